"""Prompt text for probe generation and repair."""

import json

PROBE_LANGUAGE_GUIDE = """\
Probe language (line oriented, one statement per line):
  import probe                      required first line
  test "<name>":                    declares a test; statements below belong to it
  send <METHOD> BASE_URL<path>      issue a request
  header <Name>: <value>            add a request header
  auth                              attach the run's credential header
  json <JSON>                       request body
  query <JSON object>               query string parameters
  repeat <N>                        send the request N times concurrently
  expect <subject> [not] <predicate> [<value>]
Subjects: status, text, text_lower, json, or any JSON literal.
Predicates: toBe, toBeLessThan, toBeGreaterThanOrEqual, toBeDefined, toContain.
"not" is only allowed before toContain."""

GENERATE_SYSTEM = f"""\
You are an expert QA engineer. Write API probes in the probe language below.
Rules:
- Cover the happy path, invalid input, missing fields and wrong types
- Include security probes (SQL injection, XSS)
- Return ONLY the probe body, no explanations

{PROBE_LANGUAGE_GUIDE}"""

REPAIR_SYSTEM = f"""\
You are an expert QA engineer. Analyze probe failures and fix them.
Rules:
- Fix the probe based on the error
- Keep every test in the probe
- Return ONLY the probe body, no explanations

{PROBE_LANGUAGE_GUIDE}"""


def generate_prompt(method: str, path: str, auth_required: bool, category: str, template: str) -> str:
    return (
        "Write a probe for:\n"
        f"Method: {method}\n"
        f"Path: {path}\n"
        f"Auth Required: {str(auth_required).lower()}\n"
        f"Category: {category}\n\n"
        f"Reference probe:\n{template}\n\n"
        "Write the complete probe:"
    )


def repair_prompt(code: str, error: str, context: dict) -> str:
    return (
        f"Original probe:\n```\n{code}\n```\n\n"
        f"Error message:\n{error}\n\n"
        f"Context: {json.dumps(context, default=str)}\n\n"
        "Fix the probe:"
    )
