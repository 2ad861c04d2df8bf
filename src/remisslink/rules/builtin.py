"""
Built-in rules for Swedish consultation documents.

Boilerplate that leaks out of remiss PDFs (department headers, page
numbers, submission instructions), contact details, document titles, and
well-known agency abbreviations.
"""

import re
from typing import Optional

BLOCKED_PHRASES = [
    # Department headers
    r"^regeringskansliet$",
    r"^finansdepartementet$",
    r"^justitiedepartementet$",
    r"^socialdepartementet$",
    r"^utbildningsdepartementet$",
    r"^näringsdepartementet$",
    r"^miljödepartementet$",
    r"^klimat-?\s*och\s*näringslivsdepartementet$",
    r"^utrikesdepartementet$",
    r"^försvarsdepartementet$",
    r"^kulturdepartementet$",
    r"^arbetsmarknadsdepartementet$",
    r"^landsbygds-?\s*och\s*infrastrukturdepartementet$",
    # Page numbers and dates
    r"^sida\s*\d+",
    r"^sid\s*\d+",
    r"^page\s*\d+",
    r"^\d+\s*\(\s*\d+\s*\)$",  # "1 (5)"
    r"^\d+$",
    r"^\d{2,4}[-/]\d{2}$",
    r"^\d{2,4}[-/]\d{2}[-/]\d{2,4}$",
    # PDF artifacts and section headers
    r"^remissinstanser$",
    r"^sändlista$",
    r"^remisslista$",
    r"^bilaga\s*\d*",
    r"^dnr",
    r"^datum",
    r"^sammanfattning",
    r"^innehåll",
    r"^inledning",
    r"^bakgrund",
    r"^remiss\s+av",
    r"^betänkande",
    r"^till\s+regeringen",
    r"^se\s+bifogad",
    # Submission instructions
    r"myndigheter\s+under\s+regeringen",
    r"remissvaren\s+ska\s+ha\s+kommit\s+in",
    r"remissvaren\s+kommer\s+att\s+publiceras",
    r"svar(?:et|en)\s+bör\s+lämnas",
    r"remissvaren\s+ska",
    r"synpunkter\s+på\s+remissen",
    r"i\s+ett\s+bearbetningsbart\s+format",
    r"remissinstansens\s+namn",
    r"statsrådsberedningens\s+promemoria",
    r"filnamnen\s+ska\s+motsvara",
    r"ange\s+diarienummer",
    r"^kopia\s+till$",
    r"betänkandet\s+kan\s+laddas",
    r"råd\s+om\s+hur\s+remissyttranden",
    r"en\s+sammanfattning\s+av\s+remissvaren",
    r"remissvar\s+(?:lämnas\s+digitalt|ska\s+lämnas)",
    r"i\s+ämnesraden",
    r"e-postmeddelandet",
    r"och\s+remissinstansens",
    r"instansens\s+synpunkter",
    r"^och\s+i\s+mejlet",
    # Titles used as headers
    r"^rättschef$",
    r"^kansliråd$",
    r"^departementsråd$",
    r"^ämnesråd$",
]

CONTACT_INFO_PATTERNS = [
    r"@",
    r"www\.",
    r"https?://",
    r"\.se/",
    r"\.gov\.",
]

DOCUMENT_TITLE_PATTERNS = [
    r"^remiss\s+(?:av|om)",
    r"^betänkande",
    r"^SOU\s+\d{4}",
    r"^Ds\s+\d{4}",
    r"^Prop\.\s*\d{4}",
    r"^Dir\.\s*\d{4}",
    r"\d{4}[\s:]\d+.*lag(?:en|stiftning)?",  # "2025:103 En ny produktansvarslag"
]

_BLOCKED = [re.compile(p, re.IGNORECASE) for p in BLOCKED_PHRASES]
_CONTACT = [re.compile(p, re.IGNORECASE) for p in CONTACT_INFO_PATTERNS]
_TITLES = [re.compile(p, re.IGNORECASE) for p in DOCUMENT_TITLE_PATTERNS]

# Abbreviation -> canonical name
ABBREVIATION_ALIASES = {
    "SKR": "Sveriges Kommuner och Regioner",
    "MSB": "Myndigheten för samhällsskydd och beredskap",
    "FRA": "Försvarets radioanstalt",
    "FOI": "Totalförsvarets forskningsinstitut",
    "SCB": "Statistiska centralbyrån",
    "FMV": "Försvarets materielverk",
    "ISP": "Inspektionen för strategiska produkter",
    "SBU": "Statens beredning för medicinsk och social utvärdering",
    "IVO": "Inspektionen för vård och omsorg",
    "TLV": "Tandvårds- och läkemedelsförmånsverket",
    "ESV": "Ekonomistyrningsverket",
    "ESF": "Europeiska socialfonden",
    "HaV": "Havs- och vattenmyndigheten",
    "SGU": "Sveriges geologiska undersökning",
    "PRV": "Patent- och registreringsverket",
    "PTS": "Post- och telestyrelsen",
    "KTH": "Kungliga Tekniska högskolan",
    "IMY": "Integritetsskyddsmyndigheten",
    "IVL": "IVL Svenska Miljöinstitutet",
    "RFSL": (
        "Riksförbundet för homosexuellas, bisexuellas, transpersoners, "
        "queeras och intersexpersoners rättigheter"
    ),
    "SMHI": "Sveriges meteorologiska och hydrologiska institut",
    "WWF": "Världsnaturfonden",
    "SEKO": "Service- och kommunikationsfacket",
    "SIS": "Svenska institutet för standarder",
    "HSB": "HSB Riksförbund",
    "LRF": "Lantbrukarnas Riksförbund",
    "SPF": "SPF Seniorerna",
    "PRO": "Pensionärernas Riksorganisation",
    "TCO": "Tjänstemännens Centralorganisation",
    "LO": "Landsorganisationen i Sverige",
    "SACO": "Sveriges akademikers centralorganisation",
    "MPF": "Myndigheten för psykologiskt försvar",
    "SIN": "Säkerhets- och integritetsskyddsnämnden",
    "SVA": "Statens veterinärmedicinska anstalt",
    "TMF": "Trä- och Möbelföretagen",
}


def has_contact_info(text: str) -> bool:
    """Check for e-mail addresses, URLs and web domains."""
    return any(p.search(text) for p in _CONTACT)


def is_document_title(text: str) -> bool:
    """Check if text is a document title such as "SOU 2025:103"."""
    return any(p.search(text) for p in _TITLES)


def builtin_block_reason(text: str) -> Optional[str]:
    """
    Return why a name is built-in noise, or None.

    Reasons: "contact_info", "document_title", "blocked_phrase".
    """
    text = text.strip()
    if has_contact_info(text):
        return "contact_info"
    if is_document_title(text):
        return "document_title"
    if any(p.search(text) for p in _BLOCKED):
        return "blocked_phrase"
    return None
