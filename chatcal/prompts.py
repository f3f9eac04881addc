EXTRACTION_TEMPLATE = """
You are an assistant that extracts calendar event details from natural language.
Current Date: {current_date}
Available accounts and calendars:
{accounts}
Extract an array of JSON objects, where each object has the following fields:
{{
  "title": string,
  "start_time": string (ISO format),
  "end_time": string (ISO format),
  "description": string,
  "accountId": number,
  "calendar": string    // calendar ID from the list above; if not provided, default to "primary"
}}
If the time zone is not specified, assume the default timezone {timezone}.

{previous}Description: {text}
"""

PREVIOUS_PROPOSAL = "Previous JSON proposal: {trace}\n"

EDIT_TEMPLATE = (
    "Original description: {original}\n"
    "User requested changes:\n"
    "Latest edit: {latest}\n"
)

PREVIOUS_EDITS = "Previously requested changes: {history}\n"
