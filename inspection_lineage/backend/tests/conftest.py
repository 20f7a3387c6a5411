# inspection_lineage/backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile
from datetime import date

import pytest

_DB_PATH = os.path.join(tempfile.mkdtemp(prefix="inspections-tests-"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ.setdefault("APP_ENV", "local")
os.environ.setdefault("AUTH_MODE", "dev")

from app.db import Base, SessionLocal, engine, init_db  # noqa: E402
from app.models import (  # noqa: E402
    AppUser,
    InspectionTemplate,
    InventoryType,
    Property,
    TemplateItem,
    TemplateRoom,
    Unit,
    VendorType,
)


@pytest.fixture(autouse=True)
def _fresh_schema():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def user(db) -> AppUser:
    u = AppUser(email="inspector@t.local", display_name="inspector")
    db.add(u); db.commit(); db.refresh(u)
    return u


@pytest.fixture
def prop(db) -> Property:
    p = Property(name="12 Elm", address="12 Elm St")
    p.units = [Unit(name="A"), Unit(name="B")]
    db.add(p); db.commit(); db.refresh(p)
    return p


@pytest.fixture
def day0() -> date:
    return date(2026, 3, 2)


@pytest.fixture
def kitchen_template(db):
    """Kitchen: "Fix faucet" (plumber), "Replace smoke detector" (inventory). Bathroom: "Caulk tub"."""
    smoke = InventoryType(name="Smoke detector")
    plumber = VendorType(name="Plumber")
    db.add(smoke); db.add(plumber); db.commit()
    db.refresh(smoke); db.refresh(plumber)

    tpl = InspectionTemplate(name="Standard", inspection_type="S8 - RFT")
    kitchen = TemplateRoom(name="Kitchen", order_index=0)
    kitchen.items = [
        TemplateItem(description="Fix faucet", order_index=0, vendor_type_id=plumber.id),
        TemplateItem(description="Replace smoke detector", order_index=1, inventory_type_id=smoke.id, inventory_quantity=0),
    ]
    bath = TemplateRoom(name="Bathroom", order_index=1)
    bath.items = [TemplateItem(description="Caulk tub", order_index=0)]
    tpl.rooms = [kitchen, bath]
    db.add(tpl); db.commit(); db.refresh(tpl)
    return tpl
