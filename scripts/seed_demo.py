"""
Seed script: creates a demo tenant with 3 restaurants, 4 users and 3 audit templates.
Run: cd backend && alembic upgrade head && python ../scripts/seed_demo.py
"""
import asyncio
import os
import sys
from pathlib import Path

# Ensure backend is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))
os.chdir(str(Path(__file__).resolve().parent.parent / "backend"))

from app.auth import AuthorizationContext  # noqa: E402
from app.database import async_session  # noqa: E402
from app.models import Restaurant, User  # noqa: E402
from app.schemas.template import TemplateCreate  # noqa: E402
from app.services.templates import create_template  # noqa: E402

TENANT_ID = 1

RESTAURANTS = [
    {"name": "Le Comptoir - Lyon Part-Dieu", "city": "Lyon"},
    {"name": "Le Comptoir - Paris Bastille", "city": "Paris"},
    {"name": "Le Comptoir - Bordeaux Chartrons", "city": "Bordeaux"},
]

USERS = [
    {"email": "direction@comptoir.example", "display_name": "Claire Martin", "role": "admin"},
    {"email": "qualite@comptoir.example", "display_name": "Julien Moreau", "role": "manager"},
    {"email": "h.bernard@comptoir.example", "display_name": "Hugo Bernard", "role": "inspector"},
    {"email": "l.petit@comptoir.example", "display_name": "Lea Petit", "role": "inspector"},
]

TEMPLATES = [
    {
        "name": "Hygiène Cuisine",
        "category": "hygiene",
        "description": "Contrôle hebdomadaire des zones de préparation et de stockage.",
        "frequency": "weekly",
        "estimated_duration": 45,
        "items": [
            {"question": "Chambres froides sous 4°C ?", "type": "yes_no", "is_critical": True},
            {"question": "Plans de travail désinfectés ?", "type": "yes_no", "is_critical": True},
            {"question": "Traçabilité des produits (étiquettes DLC)", "type": "score", "max_score": 5},
            {"question": "Propreté générale", "type": "score", "max_score": 5},
            {"question": "Photo de la chambre froide", "type": "photo", "is_required": False},
        ],
    },
    {
        "name": "Sécurité Incendie",
        "category": "security",
        "description": "Vérification trimestrielle des équipements de sécurité.",
        "frequency": "quarterly",
        "estimated_duration": 30,
        "items": [
            {"question": "Extincteurs vérifiés dans l'année ?", "type": "yes_no", "is_critical": True},
            {"question": "Issues de secours dégagées ?", "type": "yes_no", "is_critical": True},
            {"question": "Éclairage de sécurité fonctionnel ?", "type": "yes_no"},
            {"question": "Remarques", "type": "text", "is_required": False},
        ],
    },
    {
        "name": "Qualité de Service",
        "category": "service",
        "description": "Visite mystère en salle.",
        "frequency": "monthly",
        "estimated_duration": 60,
        "items": [
            {"question": "Accueil à l'arrivée", "type": "score", "max_score": 10},
            {"question": "Temps d'attente au service", "type": "score", "max_score": 10},
            {"question": "Présentation des assiettes", "type": "score", "max_score": 10},
            {"question": "Commentaire libre", "type": "text", "is_required": False},
        ],
    },
]


async def seed():
    async with async_session() as s:
        for r in RESTAURANTS:
            s.add(Restaurant(tenant_id=TENANT_ID, **r))
        users = [User(tenant_id=TENANT_ID, **u) for u in USERS]
        s.add_all(users)
        await s.commit()

        ctx = AuthorizationContext(user_id=users[0].id, tenant_id=TENANT_ID, role="admin")
        for t in TEMPLATES:
            template = await create_template(s, ctx, TemplateCreate(**t))
            print(f"Seeded template '{template.name}' (id={template.id}) with {len(t['items'])} items")

        print(f"Seeded {len(RESTAURANTS)} restaurants and {len(USERS)} users for tenant {TENANT_ID}")


if __name__ == "__main__":
    asyncio.run(seed())
