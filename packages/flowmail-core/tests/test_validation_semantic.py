from __future__ import annotations

from flowmail.core.runtime.settings import load_settings
from flowmail.core.validation import validate_flow_dict, validate_flow_yaml


def _settings(**overrides):
    return load_settings(overrides, env={})


def _base_flow() -> dict:
    return {
        "version": 1,
        "flow": {"id": "demo"},
        "resources": {"mail": {"kind": "mail", "driver": "memory"}},
        "jobs": [
            {
                "id": "notify",
                "depends_on": [],
                "steps": [
                    {"id": "s1", "type": "mail", "inputs": {"subject": "s", "body": "b", "to": "a@x.org"}},
                ],
            }
        ],
    }


def test_validate_ok():
    report = validate_flow_dict(_base_flow(), settings=_settings())
    assert report["ok"] is True
    assert report["errors"] == []
    assert report["warnings"] == []


def test_validate_unknown_step_type():
    raw = _base_flow()
    raw["jobs"][0]["steps"][0]["type"] = "does_not_exist"
    report = validate_flow_dict(raw, settings=_settings())
    assert report["ok"] is False
    codes = {e["code"] for e in report["errors"]}
    assert "semantic:unknown_step_type" in codes


def test_validate_depends_on_unknown_and_order():
    raw = _base_flow()
    step = {"id": "s", "type": "mail", "inputs": {"subject": "s", "body": "b", "to": "a@x.org"}}
    # First job depends on the second (invalid ordering)
    raw["jobs"] = [
        {"id": "a", "depends_on": ["b"], "steps": [step]},
        {"id": "b", "depends_on": [], "steps": [step]},
    ]
    report = validate_flow_dict(raw, settings=_settings())
    codes = {e["code"] for e in report["errors"]}
    assert "semantic:depends_on_order" in codes

    raw["jobs"][0]["depends_on"] = ["nope"]
    report2 = validate_flow_dict(raw, settings=_settings())
    codes2 = {e["code"] for e in report2["errors"]}
    assert "semantic:depends_on_unknown_job" in codes2


def test_validate_duplicate_ids():
    raw = _base_flow()
    raw["jobs"].append(dict(raw["jobs"][0]))
    raw["jobs"][0]["steps"].append(dict(raw["jobs"][0]["steps"][0]))
    report = validate_flow_dict(raw, settings=_settings())
    codes = {e["code"] for e in report["errors"]}
    assert {"semantic:duplicate_job_id", "semantic:duplicate_step_id"} <= codes


def test_validate_binding_errors_point_at_the_input():
    raw = _base_flow()
    raw["jobs"][0]["steps"][0]["inputs"] = {"subject": 42, "body": "b", "to": "a@x.org", "attach": "x.log"}
    report = validate_flow_dict(raw, settings=_settings())
    assert report["ok"] is False
    by_loc = {e["loc"]: e["code"] for e in report["errors"]}
    assert by_loc["jobs[0].steps[0].inputs.subject"].startswith("binding:")
    assert by_loc["jobs[0].steps[0].inputs.attach"] == "binding:extra_forbidden"


def test_validate_missing_subject_is_not_a_binding_error():
    # Blank subject/body are reported when the step runs, with the step's own message.
    raw = _base_flow()
    raw["jobs"][0]["steps"][0]["inputs"] = {"to": "a@x.org"}
    assert validate_flow_dict(raw, settings=_settings())["ok"] is True


def test_validate_mail_resource_missing_is_a_warning():
    raw = _base_flow()
    raw["resources"] = {}
    report = validate_flow_dict(raw, settings=_settings())
    assert report["ok"] is True
    assert [w["code"] for w in report["warnings"]] == ["semantic:mail_resource_missing"]

    report2 = validate_flow_dict(raw, settings=_settings(smtp_host="smtp.example"))
    assert report2["warnings"] == []


def test_validate_mail_resource_wrong_kind():
    raw = _base_flow()
    raw["resources"]["mail"] = {"kind": "db", "driver": "sqlite"}
    report = validate_flow_dict(raw, settings=_settings())
    assert any(e["code"] == "semantic:mail_resource_kind" for e in report["errors"])


def test_validate_yaml_parse_error(tmp_path):
    flow = tmp_path / "broken.yaml"
    flow.write_text("jobs: [\n  - id: a\n", encoding="utf-8")
    report = validate_flow_yaml(str(flow), settings=_settings())
    assert report["ok"] is False
    assert report["errors"][0]["code"] == "yaml:parse_error"
    assert report["flow_yaml"] == str(flow)


def test_validate_unknown_connector():
    raw = _base_flow()
    raw["resources"]["mail"]["driver"] = "carrier_pigeon"
    report = validate_flow_dict(raw, settings=_settings())
    assert report["ok"] is False
    assert [(e["code"], e["loc"]) for e in report["errors"]] == [("semantic:unknown_connector", "resources.mail.driver")]


def test_validate_typed_mail_resource_config():
    raw = _base_flow()
    raw["resources"]["mail"] = {
        "kind": "mail",
        "driver": "smtp",
        "config": {"port": "not-a-port", "tls": True},
        "options": {"timeout": -1},
    }
    report = validate_flow_dict(raw, settings=_settings())
    by_loc = {e["loc"]: e["code"] for e in report["errors"]}
    assert by_loc["resources.mail.config.host"] == "resource:missing"
    assert by_loc["resources.mail.config.port"].startswith("resource:")
    assert by_loc["resources.mail.config.tls"] == "resource:extra_forbidden"
    assert by_loc["resources.mail.options.timeout"].startswith("resource:")


def test_validate_memory_resource_config():
    raw = _base_flow()
    raw["resources"]["mail"]["config"] = {"from_addr": "ci@x.org", "reject": ["x@x.org"], "max_messages": 5}
    assert validate_flow_dict(raw, settings=_settings())["ok"] is True

    raw["resources"]["mail"]["config"] = {"reject": "x@x.org"}
    report = validate_flow_dict(raw, settings=_settings())
    assert [e["loc"] for e in report["errors"]] == ["resources.mail.config.reject"]
