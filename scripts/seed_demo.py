#!/usr/bin/env python3
"""
QssunReports — Demo Seed.

Creates a small working dataset through the service layer:
  - two branches, an admin, a sales employee and a team leader
  - one technical team
  - a Sales report, a Project report notified to the team
  - one import request at stage 1

Usage:
    python scripts/seed_demo.py              # seed the development DB
    python scripts/seed_demo.py --reset      # drop and recreate tables first
"""

import argparse
import logging
import sys

sys.path.insert(0, ".")

from qssun_reports import create_app
from qssun_reports.models import db
from qssun_reports.models.auth import User
from qssun_reports.models.report import STAGE_CONTRACT, STAGE_FIRST_PAYMENT, STAGE_NOTIFY_TEAM
from qssun_reports.services import (
    branch_service,
    report_service,
    team_service,
    user_service,
    workflow_service,
)
from qssun_reports.services.project_workflow import normalize_updates

logger = logging.getLogger("seed_demo")

DEMO_PASSWORD = "qssun123"


def seed_people():
    riyadh = branch_service.create_branch({"name": "الرياض", "location": "Riyadh", "manager": "Admin"})
    branch_service.create_branch({"name": "جدة", "location": "Jeddah"})

    admin = user_service.create_user({
        "employeeId": "1000", "name": "مدير النظام", "password": DEMO_PASSWORD,
        "role": "Admin", "branch": riyadh.name, "employeeType": "Admin",
    })
    sales = user_service.create_user({
        "employeeId": "1001", "name": "أحمد المبيعات", "password": DEMO_PASSWORD,
        "role": "Employee", "branch": riyadh.name, "hasImportExportPermission": True,
    }, admin)
    lead = user_service.create_user({
        "employeeId": "2001", "name": "خالد الفني", "password": DEMO_PASSWORD,
        "role": "TeamLead", "branch": riyadh.name,
    }, admin)
    team = team_service.create_team(
        {"name": "فريق التركيب 1", "leaderId": lead.id, "members": ["سعيد", "فهد"]}, admin,
    )
    return admin, sales, lead, team


def seed_reports(sales, team):
    report_service.create_report({
        "type": "Sales",
        "details": {"totalVisits": 2, "customers": [
            {"id": "c1", "name": "مؤسسة الشمس", "phone": "0500000000", "requestType": "عرض سعر"},
        ]},
    }, None, sales)

    updates = normalize_updates([])
    for stage in updates:
        if stage["id"] in (STAGE_CONTRACT, STAGE_FIRST_PAYMENT, STAGE_NOTIFY_TEAM):
            stage["completed"] = True
    report_service.create_report({
        "type": "Project",
        "assignedTeamId": team.id,
        "details": {"projectOwner": "مزرعة النخيل", "size": "50kW", "updates": updates},
    }, None, sales)


def main():
    parser = argparse.ArgumentParser(description="Seed QssunReports demo data")
    parser.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
        if User.query.filter_by(username="1000").first():
            logger.warning("Demo data already present; use --reset to reseed")
            return 1

        _admin, sales, _lead, team = seed_people()
        seed_reports(sales, team)
        workflow_service.create_request(
            {"title": "استيراد ألواح شمسية", "type": "استيراد", "priority": "عالية"}, sales,
        )
        print(f"Seeded demo data. Log in as 1000 / {DEMO_PASSWORD}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
