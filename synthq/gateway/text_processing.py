"""Text normalization and sentence-aligned chunking applied before synthesis."""

import re

_URL = re.compile(r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*")
_CURRENCY = re.compile(r"\$([\d,]+(?:\.\d+)?)")
_PERCENT = re.compile(r"(\d+(?:\.\d+)?)%")

ABBREVIATIONS = {
    "Dr.": "Doctor",
    "Mr.": "Mister",
    "Mrs.": "Missus",
    "Ms.": "Miss",
    "Prof.": "Professor",
    "St.": "Street",
    "Ave.": "Avenue",
    "etc.": "et cetera",
    "vs.": "versus",
    "e.g.": "for example",
    "i.e.": "that is",
    "API": "A P I",
    "URL": "U R L",
    "HTTP": "H T T P",
    "JSON": "J S O N",
    "AI": "A I",
}

SYMBOLS = {
    "&": " and ",
    "@": " at ",
    "+": " plus ",
    "=": " equals ",
    "<": " less than ",
    ">": " greater than ",
}


class TextPreprocessor:
    """Rewrites text into a form that reads well aloud. Pure and deterministic."""

    def __init__(self) -> None:
        self._abbreviations = [
            # word boundary only where the abbreviation starts/ends with a word character
            (re.compile(rf"(?<!\w){re.escape(abbrev)}" + (r"(?!\w)" if abbrev[-1].isalnum() else "")), expansion)
            for abbrev, expansion in ABBREVIATIONS.items()
        ]

    def process(self, text: str) -> str:
        result = re.sub(r"\s+", " ", text).strip()
        result = _URL.sub(lambda m: f"the website {self._domain(m.group(0))}", result)
        for pattern, expansion in self._abbreviations:
            result = pattern.sub(expansion, result)
        result = _CURRENCY.sub(lambda m: f"{m.group(1)} dollars", result)
        result = _PERCENT.sub(lambda m: f"{m.group(1)} percent", result)
        for symbol, replacement in SYMBOLS.items():
            result = result.replace(symbol, replacement)
        return self._normalize_punctuation(result)

    @staticmethod
    def _domain(url: str) -> str:
        return re.sub(r"^https?://(www\.)?", "", url).split("/")[0]

    @staticmethod
    def _normalize_punctuation(text: str) -> str:
        text = re.sub(r"\.{3,}", "...", text)
        text = re.sub(r"!{2,}", "!", text)
        text = re.sub(r"\?{2,}", "?", text)
        text = re.sub(r"([.!?])([A-Z])", r"\1 \2", text)
        return re.sub(r"\s+", " ", text).strip()


_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def split_into_chunks(text: str, max_chars: int) -> list[str]:
    """Splits text into ordered chunks of whole sentences, each at most `max_chars` long.

    Sentences are accumulated greedily. A single sentence longer than `max_chars` is cut at word
    boundaries (or hard-cut when a word itself is too long). Joining the chunks with a space gives
    back the whitespace-normalized input.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    sentences = [s for s in _SENTENCE_END.split(text.strip()) if s.strip()] if text else []

    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        sentence = sentence.strip()
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            chunks.append(current)
            current = ""
        if len(sentence) <= max_chars:
            current = sentence
        else:
            chunks.extend(_hard_cut(sentence, max_chars))
    if current:
        chunks.append(current)
    return chunks


def _hard_cut(segment: str, max_chars: int) -> list[str]:
    blocks: list[str] = []
    start = 0
    while start < len(segment):
        end = min(start + max_chars, len(segment))
        cut = end if end == len(segment) else segment.rfind(" ", start + 1, end + 1)
        if cut == -1 or cut <= start:
            cut = end
        blocks.append(segment[start:cut].strip())
        start = cut
    return [b for b in blocks if b]
