from __future__ import annotations

import pandas as pd

from ..models.import_type import ImportType, get_fields

"""CSV template generation.

A template carries the field labels as its header row plus one example row,
so that a freshly downloaded template parses and maps without edits.
"""

__all__ = [
    "generate_template",
    "template_file_name",
]


def generate_template(import_type: ImportType) -> str:
    fields = get_fields(import_type)
    df = pd.DataFrame([[f.example for f in fields]], columns=[f.label for f in fields])
    return df.to_csv(index=False, lineterminator="\n")


def template_file_name(import_type: ImportType) -> str:
    return f"wattleos_{import_type.value}_template.csv"
