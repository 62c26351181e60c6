# src/rexcore/verification.py
"""
Light, provider-agnostic verification of task results.

The checks are textual heuristics, not model calls:

    **Instruction violations**: phrases the request forbids ("do not X",
    "never X", "avoid X") that show up in the answer anyway.

    **Logical inconsistency**: an answer that forbids and then asks for the
    same thing, repeats a step in a "first ... then ..." sequence, or says
    both "yes" and "no".

    **Uncited facts**: specific numbers, dates or proper names with no
    citation marker and no ``meta["sources"]``.

Results of one task are also compared with each other, and the first
result of every task with those of the other tasks, for opposite polarity.
Verification is advisory; the engine stores it on the PipelineContext and
returns it with the EngineResult but never rewrites the response.

Usage:
    from rexcore.verification import verify_pipeline
    context.verification = verify_pipeline(context, {"t1": [result]})
"""

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .models import ExecuteResult, IssueSeverity, PipelineContext, VerificationIssue, VerificationResult

logger = logging.getLogger(__name__)

ISSUE_INSTRUCTION = "instruction-violation"
ISSUE_LOGICAL = "logical"
ISSUE_HALLUCINATION = "hallucination"

_FORBIDDEN_PATTERN = re.compile(r"\b(don't|do not|avoid|never|must not|no)\s+([^.!?,;\n]{3,80})", re.IGNORECASE)
_CONTRADICTION_PATTERN = re.compile(
    r"\b(?:don't|do not|avoid|never)\s+([\w\s]{3,60})\b.*\b(?:do|please|should)\s+\1",
    re.IGNORECASE | re.DOTALL,
)
_REPEATED_STEP_PATTERN = re.compile(r"first[^.]*\b([\w\s]{3,60})\b[^.]*then[^.]*\b\1\b", re.IGNORECASE)
_SPECIFIC_FACT_PATTERN = re.compile(r"\b\d{3,}|\b\d{1,2}/\d{1,2}/\d{2,4}\b|\b[A-Z][a-z]{2,}\s+[A-Z][a-z]{2,}\b")
_CITATION_PATTERN = re.compile(r"\b(?:source|according to|cite)\b|https?://|\[\d+\]", re.IGNORECASE)
_WORD_PATTERN = re.compile(r"\w+")

Findings = Tuple[List[str], List[str]]


def find_forbidden_instructions(text: str) -> List[str]:
    """Phrases following a negation ("do not", "never", ...) in ``text``."""
    return [match.group(2).strip() for match in _FORBIDDEN_PATTERN.finditer(text or "")]


def _has_opposite_polarity(first: str, second: str) -> bool:
    a = set(_WORD_PATTERN.findall(first.lower()))
    b = set(_WORD_PATTERN.findall(second.lower()))
    return ("yes" in a and "no" in b) or ("no" in a and "yes" in b)


def check_instruction_violations(request_text: str, result_text: str) -> Findings:
    issues: List[str] = []
    corrections: List[str] = []
    lowered = (result_text or "").lower()
    for phrase in find_forbidden_instructions(request_text):
        if phrase and phrase.lower() in lowered:
            issues.append(f'Instruction violation: output contains forbidden phrase "{phrase}"')
            corrections.append(f"Remove or respect instruction: do not {phrase}")
    return issues, corrections


def check_logical_consistency(text: str) -> Findings:
    issues: List[str] = []
    corrections: List[str] = []
    text = text or ""

    if _CONTRADICTION_PATTERN.search(text):
        issues.append("Contradiction detected in output (conflicting instructions/claims).")
        corrections.append("Clarify or remove conflicting instructions/claims.")

    if _REPEATED_STEP_PATTERN.search(text):
        issues.append("Repeated step detected in sequence.")
        corrections.append("Review sequence for duplicated steps.")

    words = set(_WORD_PATTERN.findall(text.lower()))
    if "yes" in words and "no" in words:
        issues.append("Conflicting polarity detected (both yes and no present).")
        corrections.append("Resolve polarity contradictions.")

    return issues, corrections


def check_uncited_facts(result: ExecuteResult) -> Findings:
    issues: List[str] = []
    corrections: List[str] = []
    text = result.text or ""

    has_facts = bool(_SPECIFIC_FACT_PATTERN.search(text))
    has_citation = bool(_CITATION_PATTERN.search(text)) or bool(result.meta.get("sources"))
    if has_facts and not has_citation:
        issues.append("Possible hallucination: specific factual claims without citations")
        corrections.append("Add citations or mark claims as uncertain.")

    raw = result.meta.get("raw")
    if isinstance(raw, dict) and raw.get("choices") == []:
        issues.append("Empty model choices: potential error or hallucination.")
        corrections.append("Verify model response or re-run with different parameters.")

    return issues, corrections


def verify_result(result: ExecuteResult, request_text: str = "", task_id: Optional[str] = None) -> VerificationResult:
    """Run every single-result check on ``result``."""
    issues: List[VerificationIssue] = []
    corrections: List[str] = []

    checks = (
        (ISSUE_INSTRUCTION, IssueSeverity.HIGH, check_instruction_violations(request_text, result.text)),
        (ISSUE_LOGICAL, IssueSeverity.MEDIUM, check_logical_consistency(result.text)),
        (ISSUE_HALLUCINATION, IssueSeverity.MEDIUM, check_uncited_facts(result)),
    )
    for issue_type, severity, (messages, fixes) in checks:
        issues.extend(VerificationIssue(type=issue_type, message=m, severity=severity) for m in messages)
        corrections.extend(fixes)

    return VerificationResult(verified=not issues, task_id=task_id, issues=issues, corrections=corrections)


def verify_task_results(
    task_id: str,
    results: Sequence[ExecuteResult],
    request_text: str = "",
) -> VerificationResult:
    """Verify each result of one task and compare them pairwise."""
    issues: List[VerificationIssue] = []
    corrections: List[str] = []

    for result in results:
        single = verify_result(result, request_text, task_id)
        issues.extend(single.issues)
        corrections.extend(single.corrections)

    texts = [(r.text or "").lower() for r in results]
    for i in range(len(texts)):
        for j in range(i + 1, len(texts)):
            if texts[i] and texts[j] and texts[i] != texts[j] and _has_opposite_polarity(texts[i], texts[j]):
                issues.append(VerificationIssue(
                    type=ISSUE_LOGICAL,
                    message="Contradictory outputs between providers/models",
                ))

    return VerificationResult(verified=not issues, task_id=task_id, issues=issues, corrections=corrections)


def verify_pipeline(
    context: PipelineContext,
    results: Mapping[str, Sequence[ExecuteResult]],
) -> Dict[str, VerificationResult]:
    """
    Verify the results of every task in a request.

    Args:
        context: Pipeline context; its request text is the instruction source.
        results: Results per task id, in task order.

    Returns:
        VerificationResult per task id. A contradiction between two tasks
        is reported on the later one.
    """
    request_text = context.request.text if context.request else ""
    out: Dict[str, VerificationResult] = {
        task_id: verify_task_results(task_id, task_results, request_text)
        for task_id, task_results in results.items()
    }

    firsts = [(task_id, rs[0].text or "") for task_id, rs in results.items() if rs and rs[0].text]
    for i, (earlier_id, earlier_text) in enumerate(firsts):
        for later_id, later_text in firsts[i + 1:]:
            if _has_opposite_polarity(earlier_text, later_text):
                verdict = out[later_id]
                verdict.issues.append(VerificationIssue(
                    type=ISSUE_LOGICAL,
                    message=f"Contradictory outputs between tasks '{earlier_id}' and '{later_id}'",
                ))
                verdict.verified = False

    flagged = [task_id for task_id, verdict in out.items() if not verdict.verified]
    if flagged:
        logger.info(f"Verification flagged {len(flagged)} task(s): {flagged}")
    return out


__all__ = [
    "check_instruction_violations",
    "check_logical_consistency",
    "check_uncited_facts",
    "find_forbidden_instructions",
    "verify_pipeline",
    "verify_result",
    "verify_task_results",
]
