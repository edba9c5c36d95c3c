"""
Prometheus text exposition (format 0.0.4) for derived job state.

The payload is rendered by hand rather than through prometheus_client so
that label order is ours: reserved labels first, then user labels sorted by
key. Equal input gives byte-identical output.
"""

import math
import re
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .aggregator import MetricRecord

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

RESERVED_LABELS = ("job_name", "host", "status")

_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

STATUS_METRIC = "cronjob_status"
LAST_RUN_METRIC = "cronjob_last_run_timestamp"
DURATION_METRIC = "cronjob_duration_seconds"
TOTAL_METRIC = "cronjob_total"

FAMILIES = (
    (STATUS_METRIC,
     "Status of cron job: 1=success, 0=failure or missed deadline, -1=maintenance/paused"),
    (LAST_RUN_METRIC, "Unix timestamp of the last reported job execution"),
    (DURATION_METRIC, "Duration of the last reported job execution in seconds"),
    (TOTAL_METRIC, "Total number of registered cron jobs"),
)


def is_valid_label_name(name: str) -> bool:
    """Prometheus label name that is not reserved for internal use"""
    return bool(_LABEL_NAME_RE.match(name)) and not name.startswith("__")


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def merge_labels(
    reserved: List[Tuple[str, str]], user: Optional[Mapping[str, str]] = None
) -> List[Tuple[str, str]]:
    """Reserved pairs first, then user labels by key.

    User keys that collide with a reserved name or are not valid label names
    are dropped.
    """
    pairs = list(reserved)
    taken = {k for k, _ in pairs} | set(RESERVED_LABELS)
    for key in sorted(user or {}):
        if key in taken or not is_valid_label_name(key):
            continue
        pairs.append((key, user[key]))
    return pairs


def format_sample(name: str, labels: List[Tuple[str, str]], value: float) -> str:
    if labels:
        body = ",".join(f'{k}="{escape_label_value(v)}"' for k, v in labels)
        return f"{name}{{{body}}} {format_value(value)}"
    return f"{name} {format_value(value)}"


def _merged_result_labels(record: MetricRecord) -> Dict[str, str]:
    merged = dict(record.labels)
    merged.update(record.result_labels)
    return merged


def render_lines(records: Iterable[MetricRecord]) -> Tuple[Dict[str, List[str]], int]:
    """Sample lines per family, plus how many records were consumed"""
    samples: Dict[str, List[str]] = {name: [] for name, _ in FAMILIES}
    total = 0
    for record in records:
        total += 1
        identity = [("job_name", record.job_name), ("host", record.host)]

        samples[STATUS_METRIC].append(format_sample(
            STATUS_METRIC,
            merge_labels(identity + [("status", record.status.value)], record.labels),
            record.metric_value,
        ))

        if record.last_reported_at is not None:
            samples[LAST_RUN_METRIC].append(format_sample(
                LAST_RUN_METRIC, identity, int(record.last_reported_at.timestamp()),
            ))

        if record.has_result:
            samples[DURATION_METRIC].append(format_sample(
                DURATION_METRIC,
                merge_labels(identity, _merged_result_labels(record)),
                record.last_duration,
            ))

    samples[TOTAL_METRIC].append(format_sample(TOTAL_METRIC, [], total))
    return samples, total


def render(records: Iterable[MetricRecord]) -> bytes:
    return render_counted(records)[0]


def render_counted(records: Iterable[MetricRecord]) -> Tuple[bytes, int]:
    """Serialize metric records into a complete exposition payload.

    `records` may be a generator and is consumed once. The whole payload is
    built before anything is returned; a store failure while iterating
    `records` propagates and nothing partial escapes.
    """
    samples, total = render_lines(records)
    out: List[str] = []
    for name, help_text in FAMILIES:
        out.append(f"# HELP {name} {escape_help(help_text)}")
        out.append(f"# TYPE {name} gauge")
        out.extend(samples[name])
    return ("\n".join(out) + "\n").encode("utf-8"), total
