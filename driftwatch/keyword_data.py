"""Default rule tables.

Plain serializable data: ``rules.RuleBook`` validates these at load time, and
a YAML file with the same shape can replace them (``DRIFTWATCH_RULES_FILE``).
"""
from __future__ import annotations

from typing import Any

CATEGORY_RULES: dict[str, dict[str, Any]] = {
    "civilService": {
        "title": "Government Worker Protections",
        "keywords": {
            "capture": [
                "schedule f",
                "mass firing",
                "loyalty test",
                "loyalty oath",
                "career staff purged",
            ],
            "drift": [
                "reclassification",
                "excepted service",
                "policy-influencing positions",
                "removal protections",
                "at-will employment",
            ],
            "warning": [
                "workforce reduction",
                "reorganization",
                "hiring freeze",
                "reduction in force",
                "probationary employees",
            ],
        },
    },
    "fiscal": {
        "title": "Spending Money Congress Approved",
        "keywords": {
            "capture": [
                "violated impoundment control act",
                "illegal impoundment",
                "antideficiency act violation",
                "refused to spend appropriated funds",
            ],
            "drift": [
                "impoundment",
                "rescission",
                "funding freeze",
                "apportionment withheld",
                "pocket rescission",
            ],
            "warning": [
                "deferral",
                "spending review",
                "government shutdown",
                "grant termination",
            ],
        },
    },
    "igs": {
        "title": "Government Watchdogs (Inspectors General)",
        "keywords": {
            "capture": [
                "inspector general fired",
                "ig fired",
                "inspectors general removed",
                "oversight blocked",
            ],
            "drift": [
                "acting inspector general",
                "ig vacancy",
                "access denied",
                "records withheld",
            ],
            "warning": [
                "delayed report",
                "budget cut",
                "staffing shortage",
            ],
        },
        "special_cases": [
            {
                "title_contains": ["CURRENTLY DOWN", "offline"],
                "note_contains": ["lack of apportionment"],
                "status": "Drift",
                "reason": "Oversight.gov (central IG portal) is offline due to funding issues",
                "match": "oversight.gov shutdown",
            },
        ],
    },
    "hatch": {
        "title": "Keeping Politics Out of Government",
        "keywords": {
            "capture": [
                "hatch act violations ignored",
                "special counsel removed",
                "campaign rally on federal property",
            ],
            "drift": [
                "hatch act violation",
                "political activity at work",
                "partisan messaging",
            ],
            "warning": [
                "hatch act complaint",
                "hatch act guidance",
            ],
        },
    },
    "courts": {
        "title": "Following Court Orders",
        "keywords": {
            "capture": [
                "defied court order",
                "contempt of court",
                "ignored ruling",
                "court packing",
                "jurisdiction stripped",
            ],
            "drift": [
                "noncompliance",
                "injunction violated",
                "judicial impeachment",
                "emergency application",
            ],
            "warning": [
                "appeal filed",
                "stay requested",
                "injunction",
            ],
        },
    },
    "military": {
        "title": "Using Military Inside the U.S.",
        "keywords": {
            "capture": [
                "insurrection act invoked",
                "martial law",
                "troops deployed domestically",
                "domestic military deployment",
            ],
            "drift": [
                "national guard activated",
                "federalized national guard",
                "posse comitatus",
            ],
            "warning": [
                "border deployment",
                "military support to law enforcement",
            ],
        },
    },
    "rulemaking": {
        "title": "Independent Agency Rules",
        "keywords": {
            "capture": [
                "commissioner removed",
                "independent agency control",
                "for-cause protections eliminated",
            ],
            "drift": [
                "oira review of independent agencies",
                "agency independence",
                "regulatory review overridden",
            ],
            "warning": [
                "interim final rule",
                "regulatory freeze",
                "comment period shortened",
            ],
        },
    },
    "indices": {
        "title": "Overall Democracy Health",
        "keywords": {
            "capture": [
                "emergency powers invoked",
                "national emergency declared",
            ],
            "drift": [
                "democratic backsliding",
                "executive overreach",
            ],
            "warning": [
                "executive action",
            ],
        },
        "volume_threshold": {"drift": 50, "capture": 100},
    },
    "elections": {
        "title": "Free and Fair Elections",
        "keywords": {
            "capture": [
                "certification refused",
                "results overturned",
                "federal takeover of elections",
            ],
            "drift": [
                "voter roll purge",
                "election audit",
                "voting machines seized",
            ],
            "warning": [
                "ballot access",
                "polling place closures",
            ],
        },
    },
    "mediaFreedom": {
        "title": "Press Freedom",
        "keywords": {
            "capture": [
                "journalist arrested",
                "press credentials revoked",
                "outlet shut down",
            ],
            "drift": [
                "journalist subpoena",
                "leak investigation",
                "broadcast license threatened",
            ],
            "warning": [
                "press access restricted",
                "briefing cancelled",
            ],
        },
    },
    "infoAvailability": {
        "title": "Information Availability",
        "keywords": {
            "capture": [
                "data deleted",
                "archive destroyed",
            ],
            "drift": [
                "dataset removed",
                "report discontinued",
                "website taken down",
            ],
            "warning": [
                "site unavailable",
                "report delayed",
            ],
        },
    },
}

SUPPRESSION_RULES: dict[str, list[dict[str, Any]]] = {
    "courts": [
        {
            "keyword": "court packing",
            "suppress_if_any": [
                "fdr", "roosevelt", "1937", "historical", "history of", "new deal", "lessons from",
            ],
        },
        {
            "keyword": "contempt of court",
            "suppress_if_any": ["dismissed", "overturned", "acquitted", "cleared"],
            "downweight_if_any": ["civil contempt", "procedural"],
        },
        {
            "keyword": "jurisdiction stripped",
            "suppress_if_any": ["proposed", "introduced", "bill would", "draft legislation"],
            "downweight_if_any": ["committee debate", "hearing on"],
        },
    ],
    "igs": [
        {
            "keyword": "acting inspector general",
            "suppress_if_any": ["appointed", "confirmed", "sworn in", "senate confirmed"],
        },
        {
            "keyword": "ig vacancy",
            "suppress_if_any": [
                "filled", "nomination confirmed", "new ig confirmed", "senate confirmed", "sworn in",
            ],
        },
        {
            "keyword": "ig fired",
            "suppress_if_any": ["rumor denied", "not confirmed", "retracted"],
        },
    ],
    "fiscal": [
        {
            "keyword": "impoundment",
            "suppress_if_any": [
                "bipartisan", "passed", "signed into law", "continuing resolution",
                "impoundment control act history",
            ],
            "downweight_if_any": ["proposed", "under review"],
        },
        {
            "keyword": "rescission",
            "suppress_if_any": ["approved by congress", "bipartisan agreement", "signed into law"],
        },
        {
            "keyword": "government shutdown",
            "suppress_if_any": ["averted", "prevented", "bipartisan deal", "continuing resolution passed"],
        },
        {
            "keyword": "funding freeze",
            "suppress_if_any": ["lifted", "reversed", "court ordered release"],
        },
    ],
    "military": [
        {
            "keyword": "troops deployed domestically",
            "suppress_if_any": ["exercise", "drill", "training", "disaster relief", "hurricane response"],
        },
        {
            "keyword": "domestic military deployment",
            "suppress_if_any": ["exercise", "drill", "training", "disaster relief", "hurricane response"],
        },
        {
            "keyword": "national guard activated",
            "suppress_if_any": ["wildfire", "hurricane", "flood", "disaster relief", "snowstorm"],
            "downweight_if_any": ["state request", "governor requested"],
        },
        {
            "keyword": "federalized national guard",
            "suppress_if_any": ["training exercise", "annual training", "routine deployment"],
        },
    ],
    "elections": [
        {
            "keyword": "voter roll purge",
            "suppress_if_any": [
                "routine maintenance", "deceased voters", "moved out of state", "nvra compliance",
            ],
        },
        {
            "keyword": "election audit",
            "suppress_if_any": ["routine", "post-election audit completed", "bipartisan"],
            "downweight_if_any": ["partisan audit", "non-standard methodology"],
        },
    ],
    "mediaFreedom": [
        {
            "keyword": "journalist subpoena",
            "suppress_if_any": ["quashed", "withdrawn", "shield law applied"],
        },
    ],
}

# Reporting on the absence of the behavior, found near any keyword
NEGATION_PATTERNS: list[str] = [
    "no evidence of",
    "no indication of",
    "rejected",
    "blocked",
    "struck down",
    "overturned",
    "ruled against",
    "denied request for",
    "failed to",
    "did not",
    "was not",
    "were not",
    "has not",
    "have not",
    "without evidence",
    "unfounded",
    "debunked",
    "false claim",
]

# Matched against the agency field, not content text
HIGH_AUTHORITY_AGENCIES: list[str] = [
    "government accountability office",
    "gao",
    "congressional budget office",
    "cbo",
    "inspector general",
    "oig",
    "office of special counsel",
    "osc",
    "supreme court",
    "federal courts",
    "u.s. district court",
    "court of appeals",
    "congressional research service",
    "crs",
]

PATTERN_TERMS: list[str] = [
    "systematic",
    "pattern of",
    "repeated",
    "unprecedented",
    "widespread",
]

INFRASTRUCTURE_THEMES: list[dict[str, Any]] = [
    {
        "theme": "detention_incarceration",
        "label": "Detention & Incarceration",
        "description": (
            "Expansion of detention capacity, facility construction, private prison contracts "
            "and emergency detention infrastructure."
        ),
        "keywords": [
            "detention facility", "detention center", "detention capacity", "facility construction",
            "facility expansion", "CoreCivic", "GEO Group", "private prison", "emergency detention",
            "military detention", "tent city", "internment", "mass detention", "detention contract",
            "detention beds", "deportation flight", "removal flight", "family detention",
        ],
        "context_dependent_keywords": [
            "ICE processing", "CBP processing", "immigration detention", "expedited removal",
            "removal proceedings", "holding facility", "temporary detention", "custody capacity",
            "bed space", "processing center", "migrant facility",
        ],
        "suppression_rules": [
            {
                "keyword": "expedited removal",
                "suppress_if_any": ["court blocked", "injunction", "struck down", "ruled unlawful"],
            },
            {
                "keyword": "removal proceedings",
                "suppress_if_any": ["granted asylum", "relief granted", "case dismissed"],
            },
            {
                "keyword": "temporary detention",
                "suppress_if_any": ["released", "transferred to shelter", "humanitarian parole"],
            },
        ],
        "activation_threshold": 2,
    },
    {
        "theme": "surveillance_apparatus",
        "label": "Surveillance Apparatus",
        "description": (
            "Expansion of surveillance capabilities including biometric databases, facial "
            "recognition, social media monitoring and bulk data collection."
        ),
        "keywords": [
            "biometric database", "biometric collection", "facial recognition",
            "social media monitoring", "social media surveillance", "cell-site simulator", "stingray",
            "bulk collection", "mass surveillance", "predictive policing", "surveillance contract",
            "surveillance technology", "geofence warrant", "tower dump", "electronic surveillance",
            "wiretap", "AI surveillance", "real-time tracking",
        ],
        "context_dependent_keywords": [
            "data broker", "ALPR", "license plate reader", "phone tracking", "location data", "FISA",
            "section 702", "metadata collection", "data retention", "monitoring program",
            "intelligence sharing", "fusion center",
        ],
        "suppression_rules": [
            {
                "keyword": "FISA",
                "suppress_if_any": [
                    "annual report", "compliance review", "reauthorization", "oversight report",
                    "transparency report",
                ],
            },
            {
                "keyword": "section 702",
                "suppress_if_any": ["reauthorization debate", "reform proposal", "compliance audit"],
            },
            {
                "keyword": "fusion center",
                "suppress_if_any": ["audit", "oversight review", "privacy assessment"],
            },
            {
                "keyword": "data broker",
                "suppress_if_any": ["regulation proposed", "ban proposed", "privacy bill"],
            },
        ],
        "activation_threshold": 2,
    },
    {
        "theme": "criminalization_opposition",
        "label": "Criminalization of Opposition",
        "description": (
            "Use of law enforcement and prosecution against political opposition, protesters, "
            "journalists and advocacy organizations."
        ),
        "keywords": [
            "political prosecution", "selective prosecution", "domestic terrorist",
            "domestic terrorism designation", "protest criminalization", "material support charge",
            "seditious conspiracy", "insurrection charge", "targeting activists",
            "targeting protesters", "protest suppression", "dissent criminalized",
            "opposition investigated", "political opponent charged", "weaponized prosecution",
            "retaliatory investigation", "grand jury targeting", "subpoena targeting",
            "tax-exempt status revoked", "nonprofit investigation", "debanking",
            "enemy of the people", "designated organization",
        ],
        "context_dependent_keywords": ["RICO charge", "conspiracy charge", "enhanced penalties"],
        "suppression_rules": [
            {
                "keyword": "RICO charge",
                "suppress_if_any": [
                    "drug trafficking", "organized crime", "fraud scheme", "money laundering",
                    "racketeering enterprise",
                ],
            },
            {
                "keyword": "conspiracy charge",
                "suppress_if_any": [
                    "drug conspiracy", "wire fraud", "financial fraud", "tax evasion", "organized crime",
                ],
            },
            {
                "keyword": "enhanced penalties",
                "suppress_if_any": ["drug offense", "violent crime", "repeat offender", "gang related"],
            },
        ],
        "activation_threshold": 2,
    },
]
