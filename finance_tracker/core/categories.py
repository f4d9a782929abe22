MISCELLANEOUS = "Miscellaneous"
FIXED_CATEGORIES = [
    "Food & Dining",
    "Transportation",
    "Housing & Utilities",
    "Entertainment",
    "Shopping",
    "Health & Fitness",
    "Income",
    MISCELLANEOUS,
]

# Order matters: the first keyword found in a description wins.
KEYWORD_CATEGORIES = {
    "Food & Dining": [
        "restaurant", "café", "cafe", "coffee", "doordash", "ubereats",
        "grubhub", "pizza", "mcdonald", "starbucks",
    ],
    "Transportation": [
        "uber", "lyft", "gas", "shell", "exxon", "chevron", "parking",
        "transit", "airline", "flight",
    ],
    "Housing & Utilities": [
        "rent", "mortgage", "electric", "water", "gas bill", "internet",
        "cable", "phone",
    ],
    "Entertainment": [
        "netflix", "spotify", "hulu", "disney", "amazon prime", "movie",
        "theater", "cinema", "concert",
    ],
    "Shopping": ["amazon", "walmart", "target", "costco", "bestbuy", "store", "mall"],
    "Health & Fitness": [
        "gym", "doctor", "pharmacy", "cvs", "walgreens", "medical", "dental",
        "fitness",
    ],
    "Income": ["payroll", "salary", "deposit", "direct dep"],
}

# Free-text labels the model tends to use instead of the exact category names.
_CATEGORY_ALIASES = {
    "food": "Food & Dining",
    "dining": "Food & Dining",
    "restaurants": "Food & Dining",
    "groceries": "Food & Dining",
    "transport": "Transportation",
    "travel": "Transportation",
    "auto & transport": "Transportation",
    "housing": "Housing & Utilities",
    "utilities": "Housing & Utilities",
    "bills & utilities": "Housing & Utilities",
    "subscriptions": "Entertainment",
    "health": "Health & Fitness",
    "healthcare": "Health & Fitness",
    "fitness": "Health & Fitness",
    "salary": "Income",
    "deposit": "Income",
    "misc": MISCELLANEOUS,
    "other": MISCELLANEOUS,
    "uncategorized": MISCELLANEOUS,
}


def _normalize_label(value):
    return " ".join(str(value or "").strip().lower().split())


def normalize_category(value):
    """Map a free-text category label onto FIXED_CATEGORIES."""
    label = _normalize_label(value)
    if not label:
        return MISCELLANEOUS
    for category in FIXED_CATEGORIES:
        if label == category.lower():
            return category
    label = label.replace(" and ", " & ")
    for category in FIXED_CATEGORIES:
        if label == category.lower():
            return category
    return _CATEGORY_ALIASES.get(label, MISCELLANEOUS)
