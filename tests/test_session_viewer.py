from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fleetguard.auth.models import AuditSession
from fleetguard.auth.viewer import SessionViewer
from fleetguard.authz.redaction import REDACTED

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def _session(**kwargs) -> AuditSession:  # type: ignore[no-untyped-def]
    params = dict(
        id="s1",
        vessel_id="v1",
        audit_party="flag",
        start=T0,
        end=T0 + timedelta(days=1),
        visible_modules={"crew": True, "maintenance": True, "hr": True, "certificates": False},
        redaction_overrides={"anonymize_medical": True},
        token_hash="x",
    )
    params.update(kwargs)
    return AuditSession(**params)  # type: ignore[arg-type]


def test_module_visibility_is_an_explicit_allow_list() -> None:
    s = _session()
    assert SessionViewer.module_visible(s, "crew") is True
    assert SessionViewer.module_visible(s, "certificates") is False
    assert SessionViewer.module_visible(s, "incidents") is False


def test_session_flags_are_read_only() -> None:
    import pytest

    s = _session()
    with pytest.raises(TypeError):
        s.visible_modules["incidents"] = True  # type: ignore[index]


def test_effective_patterns_union_floor_overrides_and_party_role() -> None:
    viewer = SessionViewer()
    patterns = viewer.effective_patterns(_session(redaction_overrides={"hide_overdue": True}))
    # floor
    assert "hr.*" in patterns
    assert "profiles.salary" in patterns
    # always-on rule even though the session did not list it
    assert "crew.medical_details" in patterns
    # enabled override
    assert "certificates.overdue" in patterns
    # auditor_flag role patterns for a flag-state party
    assert "crew.salary" in patterns
    assert "maintenance.*" in patterns
    assert len(patterns) == len(set(patterns))


def test_overrides_cannot_remove_floor_or_always_on(caplog) -> None:
    viewer = SessionViewer()
    with caplog.at_level(logging.WARNING, logger="fleetguard.auth.viewer"):
        patterns = viewer.effective_patterns(
            _session(audit_party="internal", redaction_overrides={"anonymize_medical": False, "hr": False})
        )
    assert "crew.medical_details" in patterns
    assert "hr.*" in patterns
    assert any("anonymize_medical" in r.getMessage() for r in caplog.records)


def test_unknown_override_keys_are_ignored() -> None:
    viewer = SessionViewer()
    base = viewer.effective_patterns(_session(audit_party="internal", redaction_overrides={}))
    extra = viewer.effective_patterns(_session(audit_party="internal", redaction_overrides={"hide_everything": True}))
    assert base == extra


def test_party_without_role_gets_floor_and_session_rules_only() -> None:
    viewer = SessionViewer()
    patterns = viewer.effective_patterns(_session(audit_party="insurance", redaction_overrides={}))
    assert "crew.salary" not in patterns
    assert "hr.*" in patterns
    assert viewer.party_role(_session(audit_party="insurance")) is None


def test_render_redacts_module_payload() -> None:
    viewer = SessionViewer()
    out = viewer.render(
        _session(),
        "crew",
        {"name": "Ana", "salary": 4200, "medical_details": {"allergies": "none"}, "rank": "AB"},
    )
    assert out == {"name": "Ana", "salary": REDACTED, "medical_details": REDACTED, "rank": "AB"}


def test_render_applies_floor_to_hr_module() -> None:
    viewer = SessionViewer()
    out = viewer.render(_session(audit_party="internal"), "hr", {"contract_type": "permanent"})
    assert out == {"contract_type": REDACTED}


def test_render_hidden_module_returns_none() -> None:
    viewer = SessionViewer()
    assert viewer.render(_session(), "certificates", {"x": 1}) is None
    assert viewer.render(_session(), "incidents", {"x": 1}) is None


def test_enabling_a_rule_only_adds_redactions() -> None:
    viewer = SessionViewer()
    payload = {"cost": 10, "jobs": 2}
    plain = viewer.render(_session(audit_party="internal", redaction_overrides={}), "maintenance", payload)
    hidden = viewer.render(
        _session(audit_party="internal", redaction_overrides={"hide_maintenance_details": True}), "maintenance", payload
    )
    assert plain == payload
    assert hidden == {"cost": REDACTED, "jobs": REDACTED}
