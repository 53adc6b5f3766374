"""Collect evidence for one competitor and print the ranked items and coverage.

Usage:
    python scripts/harvest_evidence.py "Acme Analytics" https://acme.io [pricing docs ...]
"""

import sys
from datetime import datetime, timezone

from dotenv import load_dotenv
from evidence_ledger.log import setup_logging
from evidence_ledger.pipeline.collect import collect_competitor_evidence, render_evidence_text
from evidence_ledger.quality.coverage import analyze_coverage
from evidence_ledger.retrieval.search import get_search_provider
from evidence_ledger.schemas.evidence import EvidenceType
from evidence_ledger.schemas.project import Competitor


def run():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    print("Loading environment...")
    load_dotenv()
    setup_logging()

    name = sys.argv[1]
    url = sys.argv[2] if len(sys.argv) > 2 else None
    include_types = [EvidenceType(t) for t in sys.argv[3:]] or None
    competitor = Competitor(id="cli", project_id="cli", name=name, url=url)

    print(f"Harvesting evidence for {name} ({url or 'no url'})...")
    now = datetime.now(timezone.utc)
    evidence = collect_competitor_evidence(competitor, get_search_provider(), include_types, now=now)

    stats = evidence.stats
    print(f"Queries: {stats.queries} ({stats.failed_queries} failed), "
          f"hits: {stats.returned}, duplicates: {stats.deduped}, kept: {stats.kept}")
    print()
    print(render_evidence_text(evidence))
    print()

    report = analyze_coverage(
        {competitor.id: evidence.items},
        total_competitors=1,
        first_party_domains={competitor.id: evidence.first_party_domains},
        now=now,
    )
    print(f"Coverage: {report.overall_confidence_label} "
          f"({report.types_covered} types, first-party ratio {report.first_party_ratio or 0:.2f})")
    print(report.recency_message)
    for gap in report.gaps:
        print(f"  gap: {gap.type.value} -> {gap.suggestion}")


if __name__ == "__main__":
    run()
