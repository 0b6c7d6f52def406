"""Demo dataset for local development (``flask seed-demo``)."""

from __future__ import annotations

import click
from flask import Flask

from flowbuilder.db import get_db, init_db
from flowbuilder.infrastructure.auth_repository import AuthRepository
from flowbuilder.infrastructure.repositories import (
    CategoryRepository,
    MaterialRepository,
    ProjectRepository,
    SupplierRepository,
)
from flowbuilder.observability import bind_request_id


DEMO_PASSWORD = "demo12345"

_SUPPLIERS = (
    ("Northline Steel", "steel@northline.example", "Structural steel"),
    ("Riverbend Concrete", "sales@riverbend.example", "Concrete"),
)

_CATALOG = {
    "Structural": (("Steel beam W8x31", "STL-W831", "ea"), ("Rebar #5", "RBR-05", "ton")),
    "Concrete": (("Ready-mix 4000 psi", "CON-4000", "m3"),),
}


def seed_demo(db) -> dict:
    """Insert the demo companies, users, catalog and one project. Returns the created ids."""
    auth = AuthRepository()
    if auth.email_exists(db, "admin@flowbuilder.example"):
        raise click.ClickException("Demo data already present.")

    roles = {name: auth.role_id(db, name) for name in ("Admin", "Buyer", "Supplier")}
    with db.transaction():
        client_id = auth.create_company(db, name="FlowBuilder Demo Construction", company_type="client")
        auth.create_user(
            db,
            company_id=client_id,
            role_id=roles["Admin"],
            name="Demo Admin",
            email="admin@flowbuilder.example",
            password=DEMO_PASSWORD,
        )
        auth.create_user(
            db,
            company_id=client_id,
            role_id=roles["Buyer"],
            name="Demo Buyer",
            email="buyer@flowbuilder.example",
            password=DEMO_PASSWORD,
        )

        suppliers = SupplierRepository(company_id=client_id)
        supplier_ids = []
        for name, email, specialty in _SUPPLIERS:
            supplier_id = auth.create_company(
                db,
                name=name,
                company_type="supplier",
                email=email,
                trade_specialty=specialty,
                created_by_company_id=client_id,
            )
            auth.create_user(
                db,
                company_id=supplier_id,
                role_id=roles["Supplier"],
                name=f"{name} Sales",
                email=email,
                password=DEMO_PASSWORD,
            )
            suppliers.add_partnership(db, supplier_id)
            supplier_ids.append(supplier_id)

        categories = CategoryRepository(company_id=client_id)
        materials = MaterialRepository(company_id=client_id)
        material_ids = []
        for category_name, entries in _CATALOG.items():
            category_id = categories.create(db, name=category_name, description=None)
            for name, sku, unit in entries:
                material_ids.append(
                    materials.create(db, name=name, sku=sku, unit=unit, description=None, category_id=category_id)
                )

        project_id = ProjectRepository(company_id=client_id).create(
            db, name="Riverside Warehouse", description="Demo project"
        )

    return {
        "client_company_id": client_id,
        "supplier_company_ids": supplier_ids,
        "material_ids": material_ids,
        "project_id": project_id,
    }


def register_seed_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    def seed_demo_command() -> None:
        """Create the schema if needed and load the demo dataset."""
        with bind_request_id("cli-seed-demo"):
            init_db()
            created = seed_demo(get_db())
        click.echo(f"Demo data created: {created}")
        click.echo(f"Sign in as admin@flowbuilder.example / {DEMO_PASSWORD}")
