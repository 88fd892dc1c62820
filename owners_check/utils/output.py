import json
import re
from collections.abc import (
    Iterable,
    Mapping,
)

import yaml
from tabulate import tabulate

OUTPUT_FORMATS = ("table", "md", "json", "yaml")


def print_output(
    options: Mapping[str, str | bool],
    content: Iterable[dict],
    columns: Iterable[str] = (),
) -> str | None:
    content = list(content)
    if options.get("sort"):
        content = sorted(content, key=lambda c: tuple(str(v) for v in c.values()))

    output = options["output"]

    formatted_content = None
    if output == "table":
        formatted_content = format_table(content, columns)
    elif output == "md":
        formatted_content = re.sub(
            r" +", " ", format_table(content, columns, table_format="github")
        )
    elif output == "json":
        formatted_content = json.dumps(content)
    elif output == "yaml":
        formatted_content = yaml.dump(content)
    else:
        raise ValueError(f"unsupported output format {output}")

    print(formatted_content)
    return formatted_content


def _format_cell(cell: dict, column: str, table_format: str) -> str:
    raw_data = cell.get(column)
    if raw_data is None:
        return ""

    if isinstance(raw_data, list | tuple):
        separator = "<br />" if table_format == "github" else "\n"
        data = separator.join(str(d) for d in raw_data)
    else:
        data = str(raw_data)

    if table_format == "github":
        return data.replace("|", "&#124;")

    return data


def format_table(
    content: Iterable[dict], columns: Iterable[str], table_format: str = "simple"
) -> str:
    columns = list(columns)
    headers = [column.upper() for column in columns]
    table_data = []
    for item in content:
        row_data = [_format_cell(item, column, table_format) for column in columns]
        table_data.append(row_data)
    return tabulate(table_data, headers=headers, tablefmt=table_format)
