import argparse
import json
import sys

from flowmail.core.registry.steps import describe_step, list_steps
from flowmail.core.runner import run_flow
from flowmail.core.validation import validate_flow_yaml


def main(argv=None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = argparse.ArgumentParser(prog="flowmail", description="flowmail-core CLI")
    sp = parser.add_subparsers(dest="cmd", required=True)

    runp = sp.add_parser("run", help="Run a flow YAML once")
    runp.add_argument("--flow-yaml", required=True, help="Path to flow YAML")
    runp.add_argument("--run-id", default=None)
    runp.add_argument("--flow-job", default=None)
    runp.add_argument("--json", action="store_true", help="Print the run summary as JSON")

    valp = sp.add_parser("validate", help="Validate a flow YAML (schema + semantic + step inputs)")
    valp.add_argument("--flow-yaml", required=True, help="Path to flow YAML")
    valp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    stepsp = sp.add_parser("steps", help="List registered step types and their input schemas")
    stepsp.add_argument("--json", action="store_true", help="Output machine-readable JSON")

    args = parser.parse_args(argv)

    if args.cmd == "run":
        summary = run_flow(args.flow_yaml, run_id=args.run_id, flow_job=args.flow_job)
        if args.json:
            print(json.dumps(summary.as_dict(), ensure_ascii=False))
        else:
            for j in summary.jobs:
                line = f"{j.status}: {j.job_id}"
                if j.reason:
                    line += f" - {j.reason}"
                print(line)
        return 1 if summary.failed else 0

    if args.cmd == "validate":
        report = validate_flow_yaml(args.flow_yaml)
        if args.json:
            print(json.dumps(report, ensure_ascii=False))
        else:
            if report.get("ok"):
                print(f"OK: {report.get('flow_yaml')}")
            else:
                print(f"INVALID: {report.get('flow_yaml')}")
                for e in report.get("errors", []):
                    print(f"- {e.get('loc')}: {e.get('code')} - {e.get('msg')}")
            for w in report.get("warnings", []) or []:
                print(f"! {w.get('loc')}: {w.get('code')} - {w.get('msg')}")
        return 0 if report.get("ok") else 2

    if args.cmd == "steps":
        # Importing the runner above registered the built-ins.
        described = [describe_step(name) for name in list_steps()]
        if args.json:
            print(json.dumps(described, ensure_ascii=False))
        else:
            for d in described:
                props = sorted(((d.get("inputs") or {}).get("properties") or {}).keys())
                print(f"{d['type']}: {', '.join(props) if props else '(no declared inputs)'}")
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
