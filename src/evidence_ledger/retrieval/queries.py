"""Search query planning per evidence type.

Pure and deterministic: the same company/url/types always yield the same plans.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from ..errors import InputError
from ..schemas.evidence import EVIDENCE_TYPES, EvidenceType, QueryPlan, assert_exhaustive
from .url import extract_domain


class QueryTemplate(NamedTuple):
    # "{company} <terms>" queries, always emitted
    terms: Tuple[str, ...]
    # "site:{domain} <terms>" queries, emitted only with a known URL
    site_terms: Tuple[str, ...] = ()
    # Off-site queries that target known third-party hosts
    external: Tuple[str, ...] = ()


QUERY_TEMPLATES: Dict[EvidenceType, QueryTemplate] = {
    EvidenceType.PRICING: QueryTemplate(
        terms=("pricing plans",),
        site_terms=("pricing", "plans"),
    ),
    EvidenceType.DOCS: QueryTemplate(
        terms=("documentation", "api docs"),
        site_terms=("docs", "documentation"),
    ),
    EvidenceType.REVIEWS: QueryTemplate(
        terms=("reviews",),
        external=('site:g2.com "{company}"', 'site:capterra.com "{company}"'),
    ),
    EvidenceType.JOBS: QueryTemplate(
        terms=("careers jobs",),
        site_terms=("careers",),
        external=('site:boards.greenhouse.io "{company}"', 'site:lever.co "{company}"'),
    ),
    EvidenceType.CHANGELOG: QueryTemplate(
        terms=("changelog release notes",),
        site_terms=("changelog OR releases OR updates", "what's new"),
    ),
    EvidenceType.BLOG: QueryTemplate(
        terms=("blog announcement",),
        site_terms=("blog",),
    ),
    EvidenceType.COMMUNITY: QueryTemplate(
        terms=("community forum",),
        external=('site:reddit.com "{company}"',),
    ),
    EvidenceType.SECURITY: QueryTemplate(
        terms=("security compliance SOC 2",),
        site_terms=("security OR trust OR compliance",),
    ),
    EvidenceType.CASE_STUDIES: QueryTemplate(
        terms=("case study customers",),
        site_terms=("customers OR case-studies",),
    ),
    EvidenceType.OTHER: QueryTemplate(
        terms=("product overview",),
        site_terms=("product", "about"),
    ),
}

assert_exhaustive(QUERY_TEMPLATES, EvidenceType, "QUERY_TEMPLATES")


def plan_queries(
    company_name: str,
    url: Optional[str] = None,
    include_types: Optional[Iterable[EvidenceType]] = None,
) -> List[QueryPlan]:
    """
    One QueryPlan per requested type, in canonical type order.
    Plain "<company> <terms>" queries come first; site: queries are appended
    only when the URL yields a domain.
    """
    company = (company_name or "").strip()
    if not company:
        raise InputError("Company name is required to plan queries", code="INVALID_INPUT")

    requested = set(EvidenceType(t) for t in include_types) if include_types is not None else None
    domain = extract_domain(url) if url else ""

    plans = []
    for evidence_type in EVIDENCE_TYPES:
        if requested is not None and evidence_type not in requested:
            continue
        template = QUERY_TEMPLATES[evidence_type]
        queries = [f"{company} {terms}" for terms in template.terms]
        queries.extend(q.format(company=company) for q in template.external)
        if domain:
            queries.extend(f"site:{domain} {terms}" for terms in template.site_terms)
        plans.append(QueryPlan(
            type=evidence_type,
            queries=queries,
            preferred_domains=[domain] if domain else None,
        ))
    return plans
