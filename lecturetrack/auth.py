"""
Identité de l'appelant.

L'authentification est assurée en amont (passerelle) qui transmet l'identité
vérifiée dans les en-têtes X-User-Id, X-User-Role et X-User-Name.
L'API fait confiance à ces en-têtes et ne revalide aucun identifiant.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from pydantic import BaseModel

VALID_ROLES = {"admin", "lecturer", "student"}


class CurrentUser(BaseModel):
    id: uuid.UUID
    role: str
    name: str = ""


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_name: str = Header(default=""),
) -> CurrentUser:
    """Dépendance FastAPI : construit l'utilisateur courant depuis les en-têtes."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Identité de l'utilisateur manquante.")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Identifiant utilisateur invalide.")
    role = x_user_role.strip().lower()
    if role not in VALID_ROLES:
        raise HTTPException(status_code=401, detail="Rôle utilisateur inconnu.")
    return CurrentUser(id=user_id, role=role, name=x_user_name.strip())


def require_role(*roles: str):
    """Fabrique de dépendance : refuse (403) les rôles non autorisés."""

    def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Accès refusé pour ce rôle.")
        return user

    return checker
