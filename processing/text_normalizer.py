import re

# Printed boilerplate found on Malaysian cheques, English and Malay.
BOILERPLATE_PHRASES = (
    "please do not write or sign below this line",
    "please do not sign below this line",
    "do not write below this line",
    "sila jangan tulis atau tandatangan di bawah garisan ini",
    "jangan tulis di bawah garisan ini",
    "stamp duty paid",
    "duti setem telah dibayar",
    "duti setem dibayar",
    "this cheque is valid for six months from the date of issue",
    "this cheque is valid for six months from the date",
    "cek ini sah untuk tempoh enam bulan dari tarikh dikeluarkan",
    "cek ini sah untuk tempoh enam bulan dari tarikh",
    "the bank is not responsible for any alteration",
)


def _phrase_pattern(phrase):
    # Words may be separated by any run of spaces/tabs, never by a newline
    words = [re.escape(word) for word in phrase.split()]
    return r'[ \t]*' + r'[ \t]+'.join(words) + r'[ \t]*'


def build_boilerplate_regex(phrases=BOILERPLATE_PHRASES):
    # Longest phrases first so a shorter variant never clips a longer one
    ordered = sorted(phrases, key=len, reverse=True)
    return re.compile('|'.join(_phrase_pattern(p) for p in ordered), re.IGNORECASE)


_DEFAULT_REGEX = build_boilerplate_regex()


def normalize_text(raw_text, regex=None):
    """
    Removes known boilerplate phrases from recognized text.

    Lines keep their order; a line that held nothing but boilerplate is
    dropped. No other transformation is applied, and the result is a fixed
    point: normalizing it again returns it unchanged.
    """
    regex = regex or _DEFAULT_REGEX
    text = raw_text
    while True:
        lines = []
        for line in text.split('\n'):
            cleaned = regex.sub(' ', line)
            if cleaned == line:
                lines.append(line)
            elif cleaned.strip():
                lines.append(cleaned.strip())
        normalized = '\n'.join(lines)
        if normalized == text:
            return normalized
        text = normalized


class TextNormalizer:
    """Normalizer bound to a phrase list, extended from configuration."""

    def __init__(self, extra_phrases=()):
        self.regex = build_boilerplate_regex(tuple(BOILERPLATE_PHRASES) + tuple(extra_phrases))

    def __call__(self, raw_text):
        return normalize_text(raw_text, self.regex)
