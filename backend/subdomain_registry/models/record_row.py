"""
RegistryRecordRow model - one key/value pair of the SQL record store.
"""

from sqlalchemy import Column, DateTime, String, Text, func

from subdomain_registry.db_base import Base


class RegistryRecordRow(Base):
    """
    Key/value row backing SqlRecordStore.

    Keys follow the registry key layout (subdomain:<name>, user:<id>,
    config:<name>, webhook:<id>); values are JSON text.
    """

    __tablename__ = "registry_records"

    key = Column(
        String(255),
        primary_key=True,
        comment="Record key, e.g. subdomain:acme",
    )

    value = Column(
        Text,
        nullable=False,
        comment="JSON-encoded record",
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Last write time",
    )

    def __repr__(self) -> str:
        return f"<RegistryRecordRow(key={self.key})>"
