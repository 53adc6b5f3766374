"""Evidence type classification.

Strict priority, first match wins:
    1. URL path patterns (every rule, table order)
    2. Hostname allowlist and host prefixes
    3. Word-boundary keywords in title + snippet
    4. EvidenceType.OTHER

All patterns live in one table. Deployments can extend it from YAML
(CLASSIFIER_RULES_PATH); the merged table is validated and compiled once and
read through get_rules().
"""

import re
from functools import lru_cache
from typing import Any, Dict, NamedTuple, Optional, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import get_settings, load_classifier_rules
from ..errors import RulesConfigError
from ..log import get_logger
from ..schemas.evidence import EvidenceHit, EvidenceType
from .url import canonical_url

logger = get_logger("classify")


class TypeRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    path_patterns: Tuple[str, ...] = ()
    hosts: Tuple[str, ...] = ()
    host_prefixes: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()


# Table order is the priority order inside each stage.
DEFAULT_RULES: Dict[EvidenceType, TypeRule] = {
    EvidenceType.PRICING: TypeRule(
        path_patterns=("pricing", "plans", "price", "billing"),
        keywords=("pricing", "plan", "plans", "price", "prices", "cost", "tier", "tiers", "subscription"),
    ),
    EvidenceType.DOCS: TypeRule(
        path_patterns=("docs", "documentation", "api", "guide", "guides", "reference", "developers"),
        host_prefixes=("docs.", "developer.", "developers.", "help.", "support."),
        keywords=("documentation", "docs", "api", "guide", "tutorial", "how to", "getting started", "sdk"),
    ),
    EvidenceType.CHANGELOG: TypeRule(
        path_patterns=("changelog", "release-notes", "releases", "updates", "whats-new", "what-s-new"),
        host_prefixes=("changelog.", "releases."),
        keywords=("changelog", "release notes", "release", "released", "what's new", "product update", "product updates"),
    ),
    EvidenceType.REVIEWS: TypeRule(
        path_patterns=("reviews",),
        hosts=("g2.com", "capterra.com", "trustpilot.com", "trustradius.com", "getapp.com",
               "softwareadvice.com", "gartner.com"),
        keywords=("review", "reviews", "rating", "ratings", "testimonial", "testimonials", "pros and cons"),
    ),
    EvidenceType.COMMUNITY: TypeRule(
        path_patterns=("community", "forum", "forums", "discussions"),
        hosts=("reddit.com", "producthunt.com", "news.ycombinator.com", "stackoverflow.com",
               "discord.com", "discord.gg"),
        host_prefixes=("community.", "forum.", "forums.", "discuss."),
        keywords=("forum", "community", "discussion", "thread", "discord", "subreddit"),
    ),
    EvidenceType.SECURITY: TypeRule(
        path_patterns=("security", "trust", "compliance", "soc-2", "soc2", "gdpr", "privacy-policy"),
        host_prefixes=("trust.", "security."),
        keywords=("security", "soc 2", "soc2", "iso 27001", "gdpr", "hipaa", "compliance", "trust center"),
    ),
    EvidenceType.JOBS: TypeRule(
        path_patterns=("careers", "jobs", "hiring", "openings"),
        hosts=("greenhouse.io", "lever.co", "workable.com", "ashbyhq.com", "wellfound.com"),
        host_prefixes=("careers.", "jobs."),
        keywords=("careers", "hiring", "job opening", "job openings", "open roles", "we're hiring"),
    ),
    EvidenceType.CASE_STUDIES: TypeRule(
        path_patterns=("case-study", "case-studies", "customers", "customer-stories", "success-stories"),
        keywords=("case study", "case studies", "customer story", "customer stories", "success story"),
    ),
    EvidenceType.BLOG: TypeRule(
        path_patterns=("blog", "news", "articles"),
        hosts=("medium.com", "substack.com"),
        host_prefixes=("blog.", "news."),
        keywords=("blog", "article", "announcing", "announcement"),
    ),
}


class CompiledRule(NamedTuple):
    type: EvidenceType
    path_regex: Optional[re.Pattern]
    hosts: Tuple[str, ...]
    host_prefixes: Tuple[str, ...]
    keyword_regex: Optional[re.Pattern]


class ClassifierRules:
    """Compiled, read-only classifier table."""

    def __init__(self, rules: Dict[EvidenceType, TypeRule]):
        self.rules = dict(rules)
        self.compiled: Tuple[CompiledRule, ...] = tuple(
            self._compile(t, rule) for t, rule in self.rules.items()
        )

    @staticmethod
    def _compile(evidence_type: EvidenceType, rule: TypeRule) -> CompiledRule:
        path_regex = None
        if rule.path_patterns:
            alternatives = "|".join(re.escape(p.strip("/").lower()) for p in rule.path_patterns)
            # Segment start, pattern, then a separator or end of path.
            path_regex = re.compile(rf"/(?:{alternatives})(?=[/\-_.]|$)", re.IGNORECASE)
        keyword_regex = None
        if rule.keywords:
            alternatives = "|".join(re.escape(k.lower()) for k in rule.keywords)
            keyword_regex = re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)
        return CompiledRule(
            type=evidence_type,
            path_regex=path_regex,
            hosts=tuple(h.lower() for h in rule.hosts),
            host_prefixes=tuple(p.lower() for p in rule.host_prefixes),
            keyword_regex=keyword_regex,
        )


def merge_rules(base: Dict[EvidenceType, TypeRule], extension: Dict[str, Any]) -> Dict[EvidenceType, TypeRule]:
    """
    Append YAML-supplied patterns to the base table.
    Unknown types, unknown fields or non-list values raise RulesConfigError.
    """
    merged = dict(base)
    for raw_type, raw_rule in (extension or {}).items():
        try:
            evidence_type = EvidenceType(raw_type)
        except ValueError:
            raise RulesConfigError(f"Unknown evidence type in classifier rules: {raw_type!r}", type=str(raw_type)) from None
        if evidence_type is EvidenceType.OTHER:
            raise RulesConfigError("'other' is the fallback type and cannot carry rules", type=raw_type)
        try:
            addition = TypeRule.model_validate(raw_rule or {})
        except ValidationError as e:
            raise RulesConfigError(f"Invalid classifier rule for {raw_type}: {e}", type=raw_type) from e

        current = merged.get(evidence_type, TypeRule())
        merged[evidence_type] = TypeRule(
            path_patterns=current.path_patterns + addition.path_patterns,
            hosts=current.hosts + addition.hosts,
            host_prefixes=current.host_prefixes + addition.host_prefixes,
            keywords=current.keywords + addition.keywords,
        )
    return merged


def validate_rules(rules: Dict[EvidenceType, TypeRule]) -> None:
    missing = [t.value for t in EvidenceType if t is not EvidenceType.OTHER and t not in rules]
    if missing:
        raise RulesConfigError(f"Classifier table has no rules for: {', '.join(missing)}")
    for evidence_type, rule in rules.items():
        for value in rule.path_patterns + rule.hosts + rule.host_prefixes + rule.keywords:
            if not value or not value.strip():
                raise RulesConfigError(f"Empty pattern in classifier rules for {evidence_type.value}")


def build_rules(extension: Optional[Dict[str, Any]] = None) -> ClassifierRules:
    table = merge_rules(DEFAULT_RULES, extension) if extension else dict(DEFAULT_RULES)
    validate_rules(table)
    return ClassifierRules(table)


@lru_cache()
def get_rules() -> ClassifierRules:
    extension = load_classifier_rules(get_settings().CLASSIFIER_RULES_PATH)
    if extension:
        logger.info(f"Extending classifier rules for: {', '.join(map(str, extension))}")
    return build_rules(extension)


def _host_matches(host: str, rule: CompiledRule) -> bool:
    for allowed in rule.hosts:
        if host == allowed or host.endswith("." + allowed):
            return True
    return any(host.startswith(prefix) for prefix in rule.host_prefixes)


def classify(item: EvidenceHit, rules: Optional[ClassifierRules] = None) -> EvidenceType:
    rules = rules or get_rules()

    path, host = "", ""
    canonical = canonical_url(item.url)
    if canonical:
        parts = urlsplit(canonical)
        path = parts.path.lower()
        host = (parts.hostname or "").lower()

    if path:
        for rule in rules.compiled:
            if rule.path_regex and rule.path_regex.search(path):
                return rule.type

    if host:
        for rule in rules.compiled:
            if _host_matches(host, rule):
                return rule.type

    text = " ".join(part for part in (item.title, item.snippet) if part)
    if text:
        for rule in rules.compiled:
            if rule.keyword_regex and rule.keyword_regex.search(text):
                return rule.type

    return EvidenceType.OTHER

