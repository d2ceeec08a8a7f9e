"""
Image and Counter SQLAlchemy models.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum,
    Integer,
    String,
    JSON,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from vmregistry.db.base import Base


class Architecture(str, enum.Enum):
    """Supported CPU architectures."""
    I386 = "i386"
    X86_64 = "x86_64"


class AccessLevel(str, enum.Enum):
    """Image visibility in listings."""
    PUBLIC = "public"
    PRIVATE = "private"


class ImageFormat(str, enum.Enum):
    """Disk/container formats."""
    NONE = "none"
    ISO = "iso"
    VHD = "vhd"
    VDI = "vdi"
    VMDK = "vmdk"
    AMI = "ami"  # Amazon Machine Image
    AKI = "aki"  # Amazon Kernel Image
    ARI = "ari"  # Amazon Ramdisk Image


class ImageType(str, enum.Enum):
    """Image types (target cloud or boot component)."""
    NONE = "none"
    KERNEL = "kernel"
    RAMDISK = "ramdisk"
    AMAZON = "amazon"
    EUCALYPTUS = "eucalyptus"
    OPENSTACK = "openstack"
    OPENNEBULA = "opennebula"
    NIMBUS = "nimbus"


class ImageStatus(str, enum.Enum):
    """
    Image lifecycle.

    queued -> saving -> active, with killed for failed uploads.
    """
    QUEUED = "queued"
    SAVING = "saving"
    ACTIVE = "active"
    KILLED = "killed"


class StoreName(str, enum.Enum):
    """Backends an image's bytes may live in."""
    FILE = "file"
    HTTP = "http"
    S3 = "s3"
    CUMULUS = "cumulus"
    WALRUS = "walrus"
    LUNACLOUD = "lunacloud"
    HDFS = "hdfs"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Image(Base):
    """
    VM image metadata record.

    ``id`` is allocated from the ``images`` counter and never reused.
    The image bytes themselves live at ``location`` in the ``store`` backend.
    """
    __tablename__ = "images"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Sequential identifier allocated from the counters table",
    )
    uri: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Registry URI of this image",
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    architecture: Mapped[Architecture] = mapped_column(
        Enum(Architecture, name="image_architecture", values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    access: Mapped[AccessLevel] = mapped_column(
        Enum(AccessLevel, name="image_access", values_callable=_enum_values),
        nullable=False,
        default=AccessLevel.PUBLIC,
        index=True,
    )
    type: Mapped[ImageType | None] = mapped_column(
        Enum(ImageType, name="image_type", values_callable=_enum_values),
        nullable=True,
    )
    format: Mapped[ImageFormat | None] = mapped_column(
        Enum(ImageFormat, name="image_format", values_callable=_enum_values),
        nullable=True,
    )
    store: Mapped[StoreName | None] = mapped_column(
        Enum(StoreName, name="image_store", values_callable=_enum_values),
        nullable=True,
        index=True,
    )
    location: Mapped[str | None] = mapped_column(
        String(1024),
        nullable=True,
        comment="Storage locator of the image file",
    )
    status: Mapped[ImageStatus] = mapped_column(
        Enum(ImageStatus, name="image_status", values_callable=_enum_values),
        nullable=False,
        default=ImageStatus.QUEUED,
        index=True,
    )
    size: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="File size in bytes",
    )
    checksum: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="MD5 hex digest or provider ETag",
    )
    owner: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    kernel: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Id of the kernel image to boot with",
    )
    ramdisk: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Id of the ramdisk image to boot with",
    )
    properties: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Free-form key/value properties",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    uploaded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    access_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, name='{self.name}', status={self.status})>"


class Counter(Base):
    """Per-entity sequence holding the next id to allocate."""
    __tablename__ = "counters"

    entity: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    next_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Counter(entity='{self.entity}', next_id={self.next_id})>"
