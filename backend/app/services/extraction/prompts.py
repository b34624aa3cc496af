"""Prompts for banking metadata extraction and bank abbreviations."""

BANKING_EXTRACTION_SYSTEM_PROMPT = """You read Australian bank statements and extract account metadata.
Respond with a single JSON object and nothing else."""

BANKING_EXTRACTION_USER_PROMPT = """Extract the account metadata from this bank statement text.

Return JSON with exactly these keys:
- "accountHolderName": full name of the account holder(s) as printed, or null
- "accountName": the account product name (e.g. "Everyday Account"), or null
- "financialInstitution": the bank or institution name, or null
- "accountNumber": the account number as printed, or null
- "bsbSortCode": the BSB or sort code, or null
- "dateFrom": first date covered by the statement as YYYY-MM-DD, or null
- "dateTo": last date covered by the statement as YYYY-MM-DD, or null
- "confidence": number between 0 and 1 for how sure you are of the holder name

Do not guess. Use null for anything not printed on the statement.

STATEMENT TEXT:
{text}"""

BANK_ABBREVIATION_SYSTEM_PROMPT = (
    "You are a financial abbreviation expert. Provide only the abbreviation, no explanation."
)

BANK_ABBREVIATION_USER_PROMPT = """Given the financial institution name "{institution}", provide a commonly used, professional abbreviation that would be recognized in Australian financial contexts. The abbreviation should be 2-6 characters long and widely understood.

Examples:
- Commonwealth Bank of Australia -> CBA
- Australia and New Zealand Banking Group -> ANZ
- Westpac Banking Corporation -> WBC
- National Australia Bank -> NAB
- Bendigo and Adelaide Bank -> BEN
- ING Bank -> ING

Respond with only the abbreviation in uppercase."""
