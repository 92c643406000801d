# blogapi/crud/role.py
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Iterable, Optional

from blogapi.authz.registry import PERMISSIONS, SYSTEM_ROLES
from blogapi.core.errors import ValidationFailed
from blogapi.models import Permission, Role


class CRUDRole:
    async def list_all(self, db: AsyncSession) -> list[Role]:
        res = await db.execute(select(Role).order_by(Role.name))
        return list(res.scalars().all())

    async def get_by_id(self, db: AsyncSession, role_id: int) -> Optional[Role]:
        res = await db.execute(select(Role).where(Role.id == role_id))
        return res.scalars().first()

    async def get_by_name(self, db: AsyncSession, name: str) -> Optional[Role]:
        res = await db.execute(select(Role).where(Role.name == name))
        return res.scalars().first()

    async def get_permissions(self, db: AsyncSession, names: Iterable[str]) -> list[Permission]:
        """Resolve permission names for a grant.

        An unknown name is a malformed payload, not an authorization outcome,
        so it raises ``ValidationFailed`` (422). Authorization against an
        unknown role still denies: the registry grants it nothing.
        """
        names = list(dict.fromkeys(names))
        if not names:
            return []
        res = await db.execute(select(Permission).where(Permission.name.in_(names)))
        found = {p.name: p for p in res.scalars().all()}
        unknown = [name for name in names if name not in found]
        if unknown:
            raise ValidationFailed(f"Unknown permission: {', '.join(unknown)}")
        return [found[name] for name in names]

    async def seed(self, db: AsyncSession) -> None:
        """Create the permission vocabulary and system roles if absent."""
        res = await db.execute(select(Permission))
        existing = {p.name: p for p in res.scalars().all()}
        for definition in PERMISSIONS:
            if definition.name not in existing:
                permission = Permission(name=definition.name, description=definition.description)
                db.add(permission)
                existing[definition.name] = permission

        for definition in SYSTEM_ROLES:
            role = await self.get_by_name(db, definition.name)
            # existing roles keep whatever admins have since granted or revoked
            if role is None:
                role = Role(name=definition.name, description=definition.description)
                role.permissions = [existing[name] for name in sorted(definition.permissions)]
                db.add(role)
        await db.flush()


role = CRUDRole()
