from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, Text, UniqueConstraint, DateTime, text
from typing import Optional

Base = declarative_base()

DEFAULT_CATEGORY = 'General'


# --- Core Models ---
class Permission(Base):
    __tablename__ = 'permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    # Free text grouping label; not a foreign key
    category: Mapped[Optional[str]] = mapped_column(String(100), default=DEFAULT_CATEGORY, index=True)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    @property
    def category_label(self) -> str:
        return self.category or DEFAULT_CATEGORY


class Role(Base):
    __tablename__ = 'roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    redirect_url: Mapped[Optional[str]] = mapped_column(String(255))
    is_super_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    permissions = relationship('RolePermission', back_populates='role', cascade='all, delete-orphan')
    menu_access = relationship('RoleMenuAccess', back_populates='role', cascade='all, delete-orphan')
    users = relationship('User', back_populates='role')
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class RolePermission(Base):
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False)

    role = relationship('Role', back_populates='permissions')
    permission = relationship('Permission')

    __table_args__ = (UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),)


class MenuSection(Base):
    __tablename__ = 'menu_sections'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    section_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    section_name: Mapped[str] = mapped_column(String(128), nullable=False)
    section_icon: Mapped[Optional[str]] = mapped_column(String(64))
    section_description: Mapped[Optional[str]] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role_access = relationship('RoleMenuAccess', back_populates='section', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class RoleMenuAccess(Base):
    __tablename__ = 'role_menu_access'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    menu_section_id: Mapped[int] = mapped_column(ForeignKey('menu_sections.id', ondelete='CASCADE'), nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_priority: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    role = relationship('Role', back_populates='menu_access')
    section = relationship('MenuSection', back_populates='role_access')

    __table_args__ = (UniqueConstraint('role_id', 'menu_section_id', name='uq_role_menu_section'),)


class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(64))
    last_name: Mapped[Optional[str]] = mapped_column(String(64))
    email: Mapped[Optional[str]] = mapped_column(String(128), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default='active', nullable=False)
    # Single role per user; NULL means no permissions at all
    role_id: Mapped[Optional[int]] = mapped_column(ForeignKey('roles.id'), nullable=True, index=True)
    role = relationship('Role', back_populates='users')
    last_login: Mapped[Optional[str]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)
