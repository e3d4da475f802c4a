"""Filter expression builder.

turns the frontend's flat filter token list into the monitoring filter
grammar. the interesting part is wildcard handling - the api has no glob
support so "*" patterns get rewritten into its string match functions,
falling back to a full regex when the pattern isn't a simple prefix/suffix.
"""

import re

from monitorforge.models.query import SloQuery

# regex metacharacters that need escaping once a wildcard becomes a regex.
# "*" is deliberately missing - it turns into ".*" afterwards
WILDCARD_REGEX_RE = re.compile(r"[-\/^$+?.()|[\]{}]")

REGEX_OPERATORS = ("=~", "!=~")


def interpolate_filter_wildcards(value: str) -> str:
    """Rewrite a value containing "*" into the matching filter function."""
    matches = value.count("*")

    if matches == 2 and value.startswith("*") and value.endswith("*"):
        return f'has_substring("{value.replace("*", "")}")'
    if matches == 1 and value.startswith("*"):
        return f'ends_with("{value[1:]}")'
    if matches == 1 and value.endswith("*"):
        return f'starts_with("{value[:-1]}")'
    if matches != 0:
        value = WILDCARD_REGEX_RE.sub(lambda m: "\\\\" + m.group(0), value)
        value = value.replace("*", ".*")
        value = value.replace('"', '\\\\"')
        return f'monitoring.regex.full_match("^{value}$")'

    return value


def build_filter_string(metric_type: str, filters: list[str]) -> str:
    """Build the filter parameter for a metric type and a filter token list.

    filters come as repeating groups of four: key, operator, value and an
    "AND" connector (absent after the last group). everything is glued
    together without separators except for the connectors, which become a
    space - that is what the filter grammar expects.
    """
    if filters and len(filters) % 4 not in (0, 3):
        raise ValueError(
            f"Malformed filter {filters!r}: expected key, operator, value groups joined by AND"
        )

    filter_string = ""
    for i, part in enumerate(filters):
        if part == "AND":
            filter_string += " "
        elif i % 4 == 2:
            operator = filters[i - 1]
            if operator in REGEX_OPERATORS:
                # the operator was already written as "=~"; the grammar wants
                # "=" followed by the regex function, so drop the last "~".
                # note this wins over any wildcard interpretation of the value
                cut = filter_string.rfind("~")
                if cut != -1:
                    filter_string = filter_string[:cut] + filter_string[cut + 1 :]
                filter_string += f'monitoring.regex.full_match("{part}")'
            elif "*" in part:
                filter_string += interpolate_filter_wildcards(part)
            else:
                filter_string += f'"{part}"'
        else:
            filter_string += part

    return f'metric.type="{metric_type}" {filter_string}'.strip(" ")


def build_slo_filter_expression(query: SloQuery) -> str:
    """Build the filter selecting a single slo's time series."""
    return (
        f'{query.selector_name}("projects/{query.project_name}/services/'
        f'{query.service_id}/serviceLevelObjectives/{query.slo_id}")'
    )
