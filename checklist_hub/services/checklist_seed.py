"""
Checklist Hub
Default bakery checklists.

Ten recurring checklists (four daily, three weekly, three monthly) built
from the operational task sheet. Seeding is idempotent: checklists are
matched by name and existing ones are never touched.

Call ``seed_all()`` from the ``flask seed-checklists`` CLI command or
``scripts/seed_checklists.py``.
"""

import logging

from sqlalchemy import select

from checklist_hub.models import db
from checklist_hub.models.checklist import Checklist, ChecklistItem, Frequency
from checklist_hub.services.checklist_service import seed_default_roles
from checklist_hub.utils.helpers import parse_time_of_day

logger = logging.getLogger(__name__)

# Items whose title mentions one of these words are mandatory
REQUIRED_KEYWORDS = ("safety", "temperature", "haccp", "fire")


def is_required_title(title: str) -> bool:
    lowered = title.lower()
    return any(word in lowered for word in REQUIRED_KEYWORDS)


DEFAULT_CHECKLISTS = [
    # ── Daily ────────────────────────────────────────────────────────────
    {
        "name": "Daily Opening Checklist",
        "description": "Essential checks before opening for business",
        "frequency": "daily",
        "due_time": "09:00",
        "roles": ["supervisor", "manager"],
        "items": [
            "Check CCTV operational status",
            "Check fire extinguishers (pressure, accessibility)",
            "Check fuel dispenser nozzles and leak indicators",
            "Confirm emergency numbers and signage visibility",
            "Staff hygiene check: uniform, hairnets, gloves",
            "Record fridge, freezer, chiller temperatures",
            "Verify first-aid kit contents",
            "Verify spill kit availability and completeness",
            "Test POS system, UPI, card machine, print test receipt",
            "Facility walkthrough for cleanliness, leaks, odors, hazards",
        ],
    },
    {
        "name": "Daily Production Checklist",
        "description": "Quality control and production preparation",
        "frequency": "daily",
        "due_time": "08:00",
        "roles": ["cook", "kitchen", "manager"],
        "requires_photo_evidence": True,
        "items": [
            "Ingredient stock verification (raw materials & packaging)",
            "Raw material QC (visual, smell, packaging integrity)",
            "Surface sanitization with approved chemicals",
            "Equipment warm-up (ovens, mixers, POS devices)",
            "Set CCPs for the day (baking temp/time, cooling limits)",
            "Batch QC for every production batch (weight, color, structure)",
            "Record baking temperature and time per batch",
            "Sample taste QC for each batch",
            "Temperature monitoring for cold/hot storage",
        ],
    },
    {
        "name": "Daily Closing Checklist",
        "description": "End of day cleanup and security checks",
        "frequency": "daily",
        "due_time": "21:00",
        "roles": ["cashier", "cook", "kitchen", "supervisor"],
        "items": [
            "Cash till reconciliation check (shiftly)",
            "Cash, POS, UPI reconciliation",
            "Deep cleaning of grease traps and drains",
            "Full cleaning of utensils, surfaces, floor",
            "Final temp check for all storage units",
            "Production end-of-day QC sample storage",
            "Waste disposal logging (food, packaging, oil)",
            "Locking and security verification",
        ],
    },
    {
        "name": "Daily Operations Checklist",
        "description": "Ongoing operational tasks throughout the day",
        "frequency": "daily",
        "due_time": "14:00",
        "roles": ["counter-attendant", "attendant", "manager"],
        "items": [
            "FIFO rotation on shelves and storage",
            "Forecourt safety patrol (spills, smoking, hazards)",
            "Customer complaint logging and follow-up",
        ],
    },
    # ── Weekly ───────────────────────────────────────────────────────────
    {
        "name": "Weekly Inventory & Stock",
        "description": "Weekly inventory management tasks",
        "frequency": "weekly",
        "due_time": "10:00",
        "roles": ["supervisor", "manager"],
        "items": [
            "Inventory cycle count for fast-moving items",
            "Variance calculation between system and physical stock",
            "Preparation and issuance of POs to suppliers",
            "Supplier delivery quality review",
        ],
    },
    {
        "name": "Weekly HR & Training",
        "description": "Weekly employee management and development",
        "frequency": "weekly",
        "due_time": "16:00",
        "roles": ["manager", "supervisor"],
        "items": [
            "Weekly attendance, extra shifts, incentive summary",
            "Weekly one-on-one employee check-ins",
            "Short weekly training (safety, hygiene, customer handling)",
        ],
    },
    {
        "name": "Weekly Quality & Maintenance",
        "description": "Weekly quality review and equipment maintenance",
        "frequency": "weekly",
        "due_time": "17:00",
        "roles": ["manager", "supervisor", "cook", "kitchen"],
        "items": [
            "Equipment minor maintenance (oven filters, seals)",
            "Verification of completed deep-clean areas",
            "Review of weekly QC logs and deviations",
            "Customer feedback aggregation & analysis",
        ],
    },
    # ── Monthly ──────────────────────────────────────────────────────────
    {
        "name": "Monthly Finance & Compliance",
        "description": "Monthly financial and compliance checks",
        "frequency": "monthly",
        "due_time": "10:00",
        "roles": ["manager", "founder", "owner", "admin"],
        "items": [
            "Reconciliation of vendor invoices & payments",
            "Monthly P&L and cashflow report preparation",
            "Monthly HACCP file review",
            "Compliance & license documentation check",
        ],
    },
    {
        "name": "Monthly Inventory & Calibration",
        "description": "Monthly full inventory and equipment calibration",
        "frequency": "monthly",
        "due_time": "09:00",
        "roles": ["manager", "supervisor"],
        "items": [
            "Full physical inventory count (all SKUs)",
            "Expiry review for all stock",
            "Calibration of weighing scales, thermometers",
            "Fuel dispenser calibration verification",
        ],
    },
    {
        "name": "Monthly HR Review",
        "description": "Monthly employee performance and scheduling",
        "frequency": "monthly",
        "due_time": "15:00",
        "roles": ["manager"],
        "items": [
            "Employee monthly performance evaluation",
            "Update roster & leave calendar",
        ],
    },
]


def seed_default_checklists(escalation_daily=60, escalation_default=1440) -> int:
    """Create the default checklists that do not exist yet. Returns the number created."""
    existing = set(db.session.execute(select(Checklist.name)).scalars())
    created = 0

    for group in DEFAULT_CHECKLISTS:
        if group["name"] in existing:
            logger.debug("Checklist %r already exists, skipping", group["name"])
            continue
        frequency = Frequency.parse(group["frequency"])
        checklist = Checklist(
            name=group["name"],
            description=group["description"],
            frequency=frequency.value,
            due_time=parse_time_of_day(group["due_time"]),
            escalation_minutes=(
                escalation_daily if frequency is Frequency.DAILY else escalation_default
            ),
            requires_photo_evidence=group.get("requires_photo_evidence", False),
            roles=sorted(group["roles"]),
            is_active=True,
        )
        for position, title in enumerate(group["items"], start=1):
            checklist.items.append(ChecklistItem(
                title=title,
                position=position,
                is_required=is_required_title(title),
                roles=[],
            ))
        db.session.add(checklist)
        created += 1

    if created:
        db.session.commit()
        logger.info("Seeded %d default checklists", created)
    return created


def seed_all(escalation_daily=60, escalation_default=1440) -> dict:
    """Seed the role catalogue, then the default checklists."""
    roles = seed_default_roles()
    checklists = seed_default_checklists(escalation_daily, escalation_default)
    return {"roles_created": roles, "checklists_created": checklists}
