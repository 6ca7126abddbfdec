# jobmatch/nlp/extractors.py
import re
from io import BytesIO
from typing import List
from pdfminer.high_level import extract_text as pdf_extract_text
from docx import Document
from jobmatch.nlp.normalizer import normalize_terms

# caps on extracted lists
MAX_SKILLS = 20
MAX_EDUCATION = 10
MAX_TITLES = 15
MAX_INDUSTRIES = 10

# Whitelisted skills/hints (lowercase); multi-word phrases are matched as phrases
_SKILL_HINTS = {
    "forklift", "pallet jack", "inventory", "shipping", "receiving", "picking", "packing",
    "cash handling", "point of sale", "customer service", "sales", "merchandising",
    "food safety", "food handler", "servsafe", "cooking", "barista",
    "cdl", "commercial driving", "delivery", "route planning",
    "cna", "cpr", "first aid", "patient care", "phlebotomy", "medical billing",
    "welding", "machine operation", "assembly", "quality control", "osha",
    "carpentry", "electrical", "plumbing", "hvac", "landscaping",
    "data entry", "microsoft office", "microsoft excel", "scheduling", "bookkeeping", "payroll",
    "security guard", "surveillance",
    "spanish", "bilingual", "bilingual spanish", "english", "tagalog", "punjabi", "hmong",
    "python", "sql", "javascript", "react", "node.js", "java", "aws", "docker", "git",
}

_TITLE_HINTS = {
    "warehouse associate", "warehouse worker", "forklift operator", "material handler",
    "picker", "packer", "shipping clerk", "receiving clerk", "inventory clerk",
    "cashier", "sales associate", "store manager", "assistant manager", "shift supervisor",
    "customer service representative", "call center agent",
    "cook", "line cook", "prep cook", "server", "dishwasher", "barista", "host",
    "delivery driver", "truck driver", "driver",
    "cna", "caregiver", "medical assistant", "home health aide", "nurse",
    "machine operator", "production worker", "assembler", "welder", "technician",
    "laborer", "carpenter", "electrician", "landscaper",
    "administrative assistant", "receptionist", "office clerk", "data entry clerk",
    "security officer", "security guard",
    "software engineer", "developer", "junior developer", "senior software engineer",
}

_INDUSTRY_KEYWORDS = {
    "logistics": ("warehouse", "logistics", "distribution", "shipping", "forklift"),
    "retail": ("retail", "store", "cashier", "merchandis"),
    "food service": ("restaurant", "kitchen", "food", "barista", "hospitality"),
    "healthcare": ("hospital", "clinic", "patient", "medical", "nursing", "cna"),
    "manufacturing": ("manufactur", "production", "assembly", "plant", "factory"),
    "construction": ("construction", "carpent", "electrical", "plumbing", "site"),
    "transportation": ("driver", "cdl", "delivery", "trucking", "transport"),
    "agriculture": ("farm", "agricultur", "harvest", "orchard", "packing house"),
    "administrative": ("office", "administrative", "clerical", "reception", "data entry"),
    "security": ("security", "guard", "surveillance"),
    "technology": ("software", "developer", "engineer", "javascript", "python"),
}

_DEGREE_PAT = re.compile(
    r"\b(High School Diploma|GED|Associate(?:'s)? Degree|Bachelor(?:'s)?(?: of [A-Za-z]+)?"
    r"|B\.?S\.?|B\.?A\.?|BSc|MSc|M\.?S\.?|MBA|PhD|Certificate in [A-Za-z ]+)\b", re.I)
_SCHOOL_PAT = re.compile(
    r"\b(University of [A-Za-z][A-Za-z ]+|[A-Z][A-Za-z]+ (?:University|College|High School)"
    r"|Modesto Junior College|San Joaquin Delta College)\b")

_EMAIL_PAT  = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_PHONE_PAT  = re.compile(r"(\+?\d[\d\-\s\(\)\.]{7,}\d)")
_URL_PAT    = re.compile(r"https?://\S+")
_WS_PAT     = re.compile(r"\s+")

def _extract_text_from_pdf(data: bytes) -> str:
    with BytesIO(data) as bio:
        return pdf_extract_text(bio) or ""

def _extract_text_from_docx(data: bytes) -> str:
    with BytesIO(data) as bio:
        doc = Document(bio)
    return "\n".join(p.text for p in doc.paragraphs)

def sniff_and_extract_text(filename: str, data: bytes) -> str:
    name = (filename or "").lower()
    if name.endswith(".pdf"):
        return _extract_text_from_pdf(data)
    if name.endswith(".docx"):
        return _extract_text_from_docx(data)
    return data.decode("utf-8", "ignore")

def scrub_pii(text: str) -> str:
    text = _EMAIL_PAT.sub(" [email] ", text)
    text = _PHONE_PAT.sub(" [phone] ", text)
    text = _URL_PAT.sub(" [url] ", text)
    return text

def clean_resume_text(text: str, max_chars: int) -> str:
    """Normalize whitespace, scrub contact details, truncate."""
    cleaned = _WS_PAT.sub(" ", scrub_pii(text or "")).strip()
    return cleaned[:max_chars]

def _phrase_hits(text_lower: str, phrases) -> List[str]:
    hits = []
    for p in phrases:
        if re.search(r"(?<![a-z0-9])" + re.escape(p) + r"(?![a-z0-9])", text_lower):
            hits.append((text_lower.find(p), p))
    # longer phrases win ties so "bilingual spanish" precedes "spanish"
    return [p for _, p in sorted(hits, key=lambda x: (x[0], -len(x[1])))]

def extract_skills(text: str) -> List[str]:
    return normalize_terms(_phrase_hits(text.lower(), _SKILL_HINTS), limit=MAX_SKILLS)

def extract_job_titles(text: str) -> List[str]:
    return normalize_terms(_phrase_hits(text.lower(), _TITLE_HINTS), limit=MAX_TITLES)

def extract_industries(text: str) -> List[str]:
    low = text.lower()
    found = [name for name, keys in _INDUSTRY_KEYWORDS.items() if any(k in low for k in keys)]
    return found[:MAX_INDUSTRIES]

def extract_education(text: str) -> List[str]:
    items = [m.group(0).strip() for m in _DEGREE_PAT.finditer(text)]
    items += [m.group(0).strip() for m in _SCHOOL_PAT.finditer(text)]
    out, seen = [], set()
    for it in items:
        k = it.lower()
        if k not in seen:
            seen.add(k)
            out.append(it)
    return out[:MAX_EDUCATION]

def extract_resume_entities(text: str) -> dict:
    text_scrub = scrub_pii(text)
    return {
        "skills": extract_skills(text_scrub),
        "job_titles": extract_job_titles(text_scrub),
        "industries": extract_industries(text_scrub),
        "education": extract_education(text_scrub),
    }
