# module rimaqr.catalog.views

"""Endpoints du catalogue (lecture seule).
- Packages (offres de stockage), catégories et produits additionnels.
- Authentification requise: le catalogue n'est consulté que depuis l'application connectée.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException

from rimaqr.utils.security import require_user
from rimaqr.catalog import repository as catalog_repo

router = APIRouter(prefix="/api/v1/catalog", tags=["Catalog API"])


@router.get("/packages")
def get_packages(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"packages": catalog_repo.list_packages()}


@router.get("/packages/{package_id}")
def get_package(package_id: str, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    package = catalog_repo.get_package(package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package introuvable")
    return {"package": package}


@router.get("/categories")
def get_categories(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"categories": catalog_repo.list_categories()}


@router.get("/products")
def get_products(category_id: Optional[str] = None, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Produits actifs; filtre optionnel par catégorie (?category_id=...)."""
    return {"products": catalog_repo.list_products(category_id)}
