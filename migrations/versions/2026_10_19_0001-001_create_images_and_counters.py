"""Create images and counters tables

Adds:
- images: VM image metadata records
- counters: per-entity id sequences, seeded with the images counter

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    "image_architecture": ("i386", "x86_64"),
    "image_access": ("public", "private"),
    "image_type": ("none", "kernel", "ramdisk", "amazon", "eucalyptus", "openstack", "opennebula", "nimbus"),
    "image_format": ("none", "iso", "vhd", "vdi", "vmdk", "ami", "aki", "ari"),
    "image_store": ("file", "http", "s3", "cumulus", "walrus", "lunacloud", "hdfs"),
    "image_status": ("queued", "saving", "active", "killed"),
}


def upgrade() -> None:
    counters = op.create_table(
        "counters",
        sa.Column("entity", sa.String(64), primary_key=True),
        sa.Column("next_id", sa.Integer(), nullable=False),
    )
    op.bulk_insert(counters, [{"entity": "images", "next_id": 1}])

    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, comment="Sequential identifier allocated from the counters table"),
        sa.Column("uri", sa.String(255), nullable=False, comment="Registry URI of this image"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("architecture", sa.Enum(*ENUMS["image_architecture"], name="image_architecture"), nullable=False),
        sa.Column("access", sa.Enum(*ENUMS["image_access"], name="image_access"), nullable=False),
        sa.Column("type", sa.Enum(*ENUMS["image_type"], name="image_type"), nullable=True),
        sa.Column("format", sa.Enum(*ENUMS["image_format"], name="image_format"), nullable=True),
        sa.Column("store", sa.Enum(*ENUMS["image_store"], name="image_store"), nullable=True),
        sa.Column("location", sa.String(1024), nullable=True, comment="Storage locator of the image file"),
        sa.Column("status", sa.Enum(*ENUMS["image_status"], name="image_status"), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=True, comment="File size in bytes"),
        sa.Column("checksum", sa.String(128), nullable=True, comment="MD5 hex digest or provider ETag"),
        sa.Column("owner", sa.String(255), nullable=True),
        sa.Column("kernel", sa.Integer(), nullable=True, comment="Id of the kernel image to boot with"),
        sa.Column("ramdisk", sa.Integer(), nullable=True, comment="Id of the ramdisk image to boot with"),
        sa.Column("properties", sa.JSON(), nullable=False, comment="Free-form key/value properties"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_images_name", "images", ["name"])
    op.create_index("ix_images_architecture", "images", ["architecture"])
    op.create_index("ix_images_access", "images", ["access"])
    op.create_index("ix_images_store", "images", ["store"])
    op.create_index("ix_images_status", "images", ["status"])
    op.create_index("ix_images_owner", "images", ["owner"])


def downgrade() -> None:
    for index in ("owner", "status", "store", "access", "architecture", "name"):
        op.drop_index(f"ix_images_{index}", table_name="images")
    op.drop_table("images")
    op.drop_table("counters")

    bind = op.get_bind()
    for name in ENUMS:
        sa.Enum(name=name).drop(bind, checkfirst=True)
