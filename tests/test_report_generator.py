"""
Test per il report PDF e l'export JSON
"""

import json
import pytest
from datetime import datetime
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from adkeeper.conflict_objects import ConflictFinder
from adkeeper.privileged_groups import PrivilegedGroupAuditor
from adkeeper.report_generator import ReportGenerator, export_json, _cell
from adkeeper.stale_accounts import StaleAccountAuditor, fetch_accounts
from conftest import make_filetime


NOW = datetime(2024, 6, 1, 12, 0)


def run_audit(connector):
    accounts = fetch_accounts(connector)
    stale = StaleAccountAuditor(now=NOW)
    stale_issues = stale.audit(accounts["users"], accounts["computers"])

    finder = ConflictFinder(connector)
    conflicts = finder.find()

    privileged = PrivilegedGroupAuditor(connector, now=NOW)
    findings = privileged.audit()

    return {
        "stale_issues": stale_issues,
        "stale_summary": stale.get_summary(),
        "conflicts": conflicts,
        "conflict_summary": finder.get_summary(),
        "privileged_groups": privileged.groups,
        "privileged_findings": findings,
        "privileged_summary": privileged.get_summary(),
    }


@pytest.fixture
def results(connector):
    """Dominio con un problema per ogni sezione del report"""
    connector.add_user(
        "vecchio", lastLogonTimestamp=make_filetime(400, NOW), pwdLastSet=make_filetime(400, NOW)
    )
    admin = connector.add_user(
        "svc_<admin>", adminCount=1, userAccountControl=512 | 0x10000,
        lastLogonTimestamp=make_filetime(1, NOW), pwdLastSet=make_filetime(5, NOW)
    )
    connector.add_group(
        "Domain Admins", members=[admin], objectSid="S-1-5-21-1000-2000-3000-512"
    )
    connector.add_entry(
        "OU=Sales\\0ACNF:2b3c4d5e-0000-4a4a-9b9b-123456789abc,DC=example,DC=local",
        objectClass=["top", "organizationalUnit"],
        name="Sales\nCNF:2b3c4d5e-0000-4a4a-9b9b-123456789abc",
    )
    return run_audit(connector)


class TestReportGenerator:
    """Test generazione PDF"""

    def test_generate_pdf(self, results, tmp_path):
        output = str(tmp_path / "report.pdf")

        path = ReportGenerator().generate(
            domain="example.local", output_path=output, scan_date=NOW, **results
        )

        assert path == output
        data = Path(path).read_bytes()
        assert data.startswith(b"%PDF")
        assert len(data) > 2000

    def test_clean_domain_pdf(self, connector, tmp_path):
        """Anche senza problemi il report viene generato"""
        output = str(tmp_path / "pulito.pdf")

        ReportGenerator().generate(
            domain="example.local", output_path=output, **run_audit(connector)
        )

        assert Path(output).read_bytes().startswith(b"%PDF")

    def test_cell_text(self):
        """Testo delle celle escapato e troncato"""
        assert _cell("svc_<admin>") == "svc_&lt;admin&gt;"
        assert _cell("x" * 150) == "x" * 100 + "..."
        assert _cell(None) == ""


class TestExportJson:
    """Test export JSON"""

    def test_export_sections(self, results, tmp_path):
        path = export_json(
            str(tmp_path / "audit.json"), "example.local",
            stale_accounts=results["stale_issues"],
            conflicts=results["conflicts"],
            privileged_findings=results["privileged_findings"],
            privileged_summary=results["privileged_summary"],
        )

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        assert data["domain"] == "example.local"
        assert "scan_date" in data
        assert any(i["username"] == "vecchio" for i in data["stale_accounts"])
        assert data["conflicts"][0]["original_name"] == "Sales"
        finding = next(
            f for f in data["privileged_findings"]
            if f["issue_type"] == "PASSWORD_NEVER_EXPIRES"
        )
        assert finding["risk_level"] == "critical"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
