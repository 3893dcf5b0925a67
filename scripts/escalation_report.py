#!/usr/bin/env python3
"""Escalation rule divergence report.

Lists every (base priority, elapsed %) boundary where the step, tiered and
cascading rules disagree, so product owners can pick one deliberately.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List

ROOT = Path(__file__).resolve().parent.parent
OUT = ROOT / "analysis_outputs" / "escalation_divergence.json"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pulseboard.derive import PROFILES
from pulseboard.escalation import EscalationRule, divergence_table


def build_report(percentages: List[int]) -> Dict[str, object]:
    rows = divergence_table(percentages)
    divergent = [row for row in rows if row["divergent"]]
    return {
        "rules": [rule.value for rule in EscalationRule],
        "profiles": {name: profile.as_dict() for name, profile in PROFILES.items()},
        "rows": rows,
        "divergent_count": len(divergent),
        "divergent": divergent,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--pct", type=int, nargs="*", default=[0, 25, 49, 50, 60, 69, 70, 85, 100])
    parser.add_argument("--out", type=Path, default=OUT)
    args = parser.parse_args()

    report = build_report(sorted(set(args.pct)))
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(json.dumps(report, indent=2) + "\n", encoding="utf-8")

    print(f"ESCALATION_REPORT divergent={report['divergent_count']} output={args.out}")
    for row in report["divergent"]:
        variants = ", ".join(f"{rule}={row[rule]}" for rule in report["rules"])
        print(f"- base={row['base']} pct={row['pct']}: {variants}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
