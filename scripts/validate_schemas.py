"""Runs jsonschema meta-validation for all webhook event schemas."""

import json
from pathlib import Path

from jsonschema import Draft202012Validator


SCHEMA_DIR = Path(__file__).resolve().parent.parent / "eventguard" / "schemas"


def validate() -> None:
    for schema in SCHEMA_DIR.glob("*.json"):
        data = json.loads(schema.read_text())
        Draft202012Validator.check_schema(data)
        print(f"{schema.name}: ok")


if __name__ == "__main__":
    validate()
