"""
Team name matching between external providers and our database.

Providers spell club names their own way ("Paris Saint-Germain FC",
"Stade Toulousain Rugby", "FC Internazionale Milano"). Names are
normalized first, then compared with several strategies and the best
weighted score wins.
"""

import logging
import re
import unicodedata

logger = logging.getLogger(__name__)

# (strategy, minimum raw score, weight)
MATCH_STRATEGIES = (
    ("exact_normalized", 0.95, 1.0),
    ("fuzzy_normalized", 0.7, 0.9),
    ("partial_match", 0.6, 0.8),
    ("word_overlap", 0.5, 0.7),
)

_CLUB_AFFIXES = (
    "fc", "cf", "ac", "as", "afc", "sc", "ssc", "fk", "sk", "ec", "pae", "sfp",
    "club", "rugby", "stade", "rc", "cd", "sv",
)

_ALIASES = (
    (r"internazionale milano|internazionale", "inter milan"),
    (r"sport lisboa e benfica|lisboa e benfica|lisboa benfica", "benfica"),
    (r"kobenhavn", "copenhagen"),
    (r"atletico de madrid", "atletico madrid"),
    (r"olympique de marseille|olympique marseille", "marseille"),
    (r"sporting clube de portugal|sporting portugal", "sporting cp"),
    (r"paphos", "pafos"),
    (r"athletic bilbao", "athletic club"),
    (r"bodo glimt|bodo/glimt", "bodo glimt"),
    (r"^psv$", "psv eindhoven"),
)


def _fold_accents(value):
    # ø and æ have no decomposition
    value = value.replace("ø", "o").replace("æ", "ae").replace("ß", "ss")
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_team_name(name):
    """Lower-case, fold accents, drop club prefixes/suffixes and apply aliases"""
    if not name:
        return ""

    value = _fold_accents(name.lower())
    value = re.sub(r"[.\-']", " ", value)
    value = re.sub(r"\s+", " ", value).strip()

    for pattern, replacement in _ALIASES:
        value = re.sub(pattern, replacement, value)

    words = value.split(" ")
    # Keep at least one word, "AS" alone is still a name
    while len(words) > 1 and words[0] in _CLUB_AFFIXES:
        words = words[1:]
    while len(words) > 1 and words[-1] in _CLUB_AFFIXES:
        words = words[:-1]

    return " ".join(words).strip()


def levenshtein_distance(first, second):
    """Edit distance between two strings"""
    if len(first) < len(second):
        first, second = second, first

    previous_row = list(range(len(second) + 1))
    for i, char_first in enumerate(first, start=1):
        current_row = [i]
        for j, char_second in enumerate(second, start=1):
            insertions = previous_row[j] + 1
            deletions = current_row[j - 1] + 1
            substitutions = previous_row[j - 1] + (char_first != char_second)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def similarity(first, second):
    """Similarity in [0, 1] derived from the edit distance"""
    longer = first if len(first) >= len(second) else second
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(first, second)) / len(longer)


def partial_match(first, second):
    """Length ratio when one normalized name contains the other"""
    norm_first = normalize_team_name(first)
    norm_second = normalize_team_name(second)
    if not norm_first or not norm_second:
        return 0.0

    if norm_first in norm_second or norm_second in norm_first:
        shorter, longer = sorted((norm_first, norm_second), key=len)
        return len(shorter) / len(longer)
    return 0.0


def word_overlap(first, second):
    """Share of significant words (3+ letters) found in both names"""
    words_first = [w for w in normalize_team_name(first).split() if len(w) > 2]
    words_second = [w for w in normalize_team_name(second).split() if len(w) > 2]

    if not words_first or not words_second:
        return 0.0

    common = [
        word
        for word in words_first
        if any(similarity(word, other) > 0.8 for other in words_second)
    ]
    return len(common) / max(len(words_first), len(words_second))


def _strategy_score(strategy, external_name, our_name):
    if strategy == "exact_normalized":
        return 1.0 if normalize_team_name(external_name) == normalize_team_name(our_name) else 0.0
    if strategy == "fuzzy_normalized":
        return similarity(normalize_team_name(external_name), normalize_team_name(our_name))
    if strategy == "partial_match":
        return partial_match(external_name, our_name)
    if strategy == "word_overlap":
        return word_overlap(external_name, our_name)
    raise ValueError(f"Unknown matching strategy: {strategy}")


def find_best_team_match(external_name, teams):
    """
    Find the team whose name best matches an external team name.

    Args:
        external_name: name reported by the provider
        teams: iterable of objects with ``name`` (and optionally ``short_name``)

    Returns:
        dict with ``team``, ``score`` and ``method``, or None
    """
    best = None
    best_score = 0.0

    for team in teams:
        candidates = [team.name]
        short_name = getattr(team, "short_name", None)
        if short_name:
            candidates.append(short_name)

        for candidate in candidates:
            for strategy, threshold, weight in MATCH_STRATEGIES:
                score = _strategy_score(strategy, external_name, candidate)
                weighted = score * weight
                if score >= threshold and weighted > best_score:
                    best_score = weighted
                    best = {"team": team, "score": weighted, "method": strategy}

    if best:
        logger.debug(
            f"Team match: '{external_name}' -> '{best['team'].name}' "
            f"({best['method']}, {best['score']:.2f})"
        )
    else:
        logger.debug(f"No team match for '{external_name}'")

    return best
