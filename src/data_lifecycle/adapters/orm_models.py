"""SQLAlchemy declarative models for the asset-tracking tables.

Attribute names match the column names the application writes (camelCase),
so ORM rows and raw SQL rows share one dump format.
"""

from datetime import datetime

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    address: Mapped[str | None] = mapped_column(String)
    city: Mapped[str | None] = mapped_column(String)
    province: Mapped[str | None] = mapped_column(String)
    postalCode: Mapped[str | None] = mapped_column(String)
    country: Mapped[str] = mapped_column(String, default="Indonesia")
    phone: Mapped[str | None] = mapped_column(String)
    email: Mapped[str | None] = mapped_column(String)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(String)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(String)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    employeeId: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str] = mapped_column(String)
    email: Mapped[str | None] = mapped_column(String)
    department: Mapped[str | None] = mapped_column(String)
    position: Mapped[str | None] = mapped_column(String)
    joinDate: Mapped[datetime | None]
    isActive: Mapped[bool] = mapped_column(Boolean, default=True)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str] = mapped_column(String)
    password: Mapped[str] = mapped_column(String)
    role: Mapped[str] = mapped_column(String)
    isActive: Mapped[bool] = mapped_column(Boolean)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]
    createdBy: Mapped[str | None] = mapped_column(ForeignKey("users.id"))


class Asset(Base):
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    noAsset: Mapped[str] = mapped_column(String, unique=True)
    status: Mapped[str] = mapped_column(String)
    serialNo: Mapped[str | None] = mapped_column(String)
    purchaseDate: Mapped[datetime | None]
    cost: Mapped[float | None] = mapped_column(Float)
    brand: Mapped[str | None] = mapped_column(String)
    model: Mapped[str | None] = mapped_column(String)
    siteId: Mapped[str | None] = mapped_column(ForeignKey("sites.id"))
    categoryId: Mapped[str | None] = mapped_column(ForeignKey("categories.id"))
    departmentId: Mapped[str | None] = mapped_column(ForeignKey("departments.id"))
    picId: Mapped[str | None] = mapped_column(ForeignKey("employees.id"))
    pic: Mapped[str | None] = mapped_column(String)
    imageUrl: Mapped[str | None] = mapped_column(String)
    notes: Mapped[str | None] = mapped_column(Text)
    dateCreated: Mapped[datetime]
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class AssetCheckout(Base):
    __tablename__ = "asset_checkouts"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    assetId: Mapped[str] = mapped_column(ForeignKey("assets.id"))
    assignToId: Mapped[str] = mapped_column(ForeignKey("employees.id"))
    departmentId: Mapped[str | None] = mapped_column(ForeignKey("departments.id"))
    checkoutDate: Mapped[datetime]
    dueDate: Mapped[datetime | None]
    notes: Mapped[str | None] = mapped_column(Text)
    signatureData: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String)
    returnedAt: Mapped[datetime | None]
    returnNotes: Mapped[str | None] = mapped_column(Text)
    receivedById: Mapped[str | None] = mapped_column(ForeignKey("users.id"))
    returnSignatureData: Mapped[str | None] = mapped_column(Text)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class AssetCustomField(Base):
    __tablename__ = "asset_custom_fields"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    label: Mapped[str] = mapped_column(String)
    fieldType: Mapped[str] = mapped_column(String)
    required: Mapped[bool] = mapped_column(Boolean)
    isActive: Mapped[bool] = mapped_column(Boolean)
    showCondition: Mapped[str | None] = mapped_column(Text)
    options: Mapped[str | None] = mapped_column(Text)
    defaultValue: Mapped[str | None] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class AssetCustomValue(Base):
    __tablename__ = "asset_custom_values"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    assetId: Mapped[str] = mapped_column(ForeignKey("assets.id"))
    customFieldId: Mapped[str] = mapped_column(ForeignKey("asset_custom_fields.id"))
    stringValue: Mapped[str | None] = mapped_column(Text)
    numberValue: Mapped[float | None] = mapped_column(Float)
    dateValue: Mapped[datetime | None]
    booleanValue: Mapped[bool | None] = mapped_column(Boolean)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class SOSession(Base):
    __tablename__ = "so_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    year: Mapped[int] = mapped_column(Integer)
    description: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String)
    totalAssets: Mapped[int] = mapped_column(Integer, default=0)
    scannedAssets: Mapped[int] = mapped_column(Integer, default=0)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]
    startedAt: Mapped[datetime | None]
    completedAt: Mapped[datetime | None]


class SOAssetEntry(Base):
    __tablename__ = "so_asset_entries"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    soSessionId: Mapped[str] = mapped_column(ForeignKey("so_sessions.id"))
    assetId: Mapped[str] = mapped_column(ForeignKey("assets.id"))
    scannedAt: Mapped[datetime]
    status: Mapped[str] = mapped_column(String)
    isIdentified: Mapped[bool] = mapped_column(Boolean)
    tempName: Mapped[str | None] = mapped_column(String)
    tempStatus: Mapped[str | None] = mapped_column(String)
    tempSerialNo: Mapped[str | None] = mapped_column(String)
    tempPic: Mapped[str | None] = mapped_column(String)
    tempNotes: Mapped[str | None] = mapped_column(Text)
    tempBrand: Mapped[str | None] = mapped_column(String)
    tempModel: Mapped[str | None] = mapped_column(String)
    tempCost: Mapped[float | None] = mapped_column(Float)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class AssetEvent(Base):
    __tablename__ = "asset_events"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    assetId: Mapped[str] = mapped_column(ForeignKey("assets.id"))
    type: Mapped[str] = mapped_column(String)
    actor: Mapped[str | None] = mapped_column(String)
    checkoutId: Mapped[str | None] = mapped_column(ForeignKey("asset_checkouts.id"))
    soSessionId: Mapped[str | None] = mapped_column(ForeignKey("so_sessions.id"))
    soAssetEntryId: Mapped[str | None] = mapped_column(ForeignKey("so_asset_entries.id"))
    payload: Mapped[str | None] = mapped_column(Text)
    createdAt: Mapped[datetime]


class Log(Base):
    __tablename__ = "logs"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    level: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(Text)
    data: Mapped[str | None] = mapped_column(Text)
    userId: Mapped[str | None] = mapped_column(ForeignKey("users.id"))
    ipAddress: Mapped[str | None] = mapped_column(String)
    userAgent: Mapped[str | None] = mapped_column(String)
    createdAt: Mapped[datetime]
    updatedAt: Mapped[datetime]


class Backup(Base):
    __tablename__ = "backups"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    filePath: Mapped[str] = mapped_column(String)
    fileSize: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String, default="completed")
    createdAt: Mapped[datetime]
    createdBy: Mapped[str | None] = mapped_column(ForeignKey("users.id"))


MODELS: dict[str, type[Base]] = {
    mapper.class_.__tablename__: mapper.class_ for mapper in Base.registry.mappers
}
