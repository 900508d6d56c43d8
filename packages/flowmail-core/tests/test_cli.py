from __future__ import annotations

import json

from flowmail.core.cli import main
from flowmail.core.mail.validation import MISSING_RECIPIENTS

FLOW = """
version: 1
flow:
  id: demo
  state:
    path: '{state}'
resources:
  mail:
    kind: mail
    driver: memory
    config:
      from_addr: ci@example.org
jobs:
  - id: job_a
    steps:
      - id: notify
        type: mail
        inputs:
          subject: Build finished
          body: All green
{to}
"""


def _flow(tmp_path, *, to="          to: dev@example.org"):
    flow = tmp_path / "flow.yaml"
    flow.write_text(FLOW.format(state=str(tmp_path / "state.sqlite"), to=to), encoding="utf-8")
    return flow


def test_cli_validate_ok(tmp_path, capsys):
    rc = main(["validate", "--flow-yaml", str(_flow(tmp_path))])
    out = capsys.readouterr().out
    assert rc == 0
    assert "OK:" in out


def test_cli_validate_json_and_exitcode(tmp_path, capsys):
    flow = tmp_path / "bad.yaml"
    # missing flow.id
    flow.write_text(
        """
version: 1
flow: {}
jobs:
  - id: job_a
    steps:
      - id: s1
        type: mail
        inputs: {}
""",
        encoding="utf-8",
    )

    rc = main(["validate", "--flow-yaml", str(flow), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 2
    assert payload["ok"] is False
    assert payload["errors"]


def test_cli_validate_reports_binding_errors(tmp_path, capsys):
    flow = _flow(tmp_path, to="          recipients: dev@example.org")

    rc = main(["validate", "--flow-yaml", str(flow)])
    out = capsys.readouterr().out
    assert rc == 2
    assert "INVALID:" in out
    assert "jobs[0].steps[0].inputs.recipients: binding:extra_forbidden" in out


def test_cli_run_success(tmp_path, capsys):
    rc = main(["run", "--flow-yaml", str(_flow(tmp_path))])
    out = capsys.readouterr().out
    assert rc == 0
    assert "SUCCESS: job_a" in out


def test_cli_run_failed_job_exitcode(tmp_path, capsys):
    # No recipients: the flow is valid but the mail step fails at run time.
    rc = main(["run", "--flow-yaml", str(_flow(tmp_path, to="")), "--json"])
    out = capsys.readouterr().out
    payload = json.loads(next(line for line in out.splitlines()[::-1] if line.startswith("{")))
    assert rc == 1
    assert payload["jobs"][0]["status"] == "FAILED"
    assert payload["jobs"][0]["reason"] == MISSING_RECIPIENTS


def test_cli_steps_json(capsys):
    rc = main(["steps", "--json"])
    described = json.loads(capsys.readouterr().out)
    assert rc == 0
    mail = next(d for d in described if d["type"] == "mail")
    props = set(mail["inputs"]["properties"])
    assert {"subject", "body", "to", "cc", "bcc", "from", "replyTo", "charset", "mimeType"} <= props
