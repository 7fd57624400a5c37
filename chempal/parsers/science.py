# chempal/parsers/science.py

"""Chemical formula detection and sub/superscript rendering."""

import re

SUBSCRIPTS: dict[str, str] = {
    str(digit): chr(0x2080 + digit) for digit in range(10)
}

SUPERSCRIPTS: dict[str, str] = {
    "0": "⁰",
    "1": "¹",
    "2": "²",
    "3": "³",
    **{str(digit): chr(0x2070 + digit) for digit in range(4, 10)},
}

# Closed set of element symbols; a lone capital that is not an element
# (e.g. "J", "Q") cannot start a group.
_ELEMENT = (
    r"(?:H[eogf]?|L[iau]|B[eari]?|C[arouseld]?|N[eiapdb]?|O[sg]?"
    r"|F[rle]?|M[gon]|A[lrsgutc]|S[icernmb]?|P[uabotmrd]?|Kr?|T[icebmalh]"
    r"|V|Z[nr]|G[ade]|R[buhena]|Yb?|I[nr]?|Xe|E[ur]|Dy|W|U)"
)
_COUNT = r"(?:<su[bp]>[2-9][0-9]*</su[bp]>|[2-9][0-9]*)"

# Two or more element(+count) groups starting a word.  Each group is a
# single element so a long run of symbols matches in linear time; the
# trailing word boundary is checked after the match.
_FORMULA_RE = re.compile(rf"(?<![A-Za-z])(?:{_ELEMENT}{_COUNT}?){{2,}}")
_SUB_TAG_RE = re.compile(r"<sub>(\d+)</sub>")
_SUP_TAG_RE = re.compile(r"<sup>(\d+)</sup>")
_DIGITS_RE = re.compile(r"\d")


def subscript(text: str) -> str:
    """Replace ASCII digits in *text* with Unicode subscript digits."""
    return _DIGITS_RE.sub(lambda m: SUBSCRIPTS[m.group(0)], text)


def superscript(text: str) -> str:
    """Replace ASCII digits in *text* with Unicode superscript digits."""
    return _DIGITS_RE.sub(lambda m: SUPERSCRIPTS[m.group(0)], text)


def find_formula_in_html(html: str | None) -> str | None:
    """Find the first chemical formula in *html* and render it.

    Counts may be plain digits (``H2SO4``) or ``<sub>``/``<sup>``
    markup.  Formulas with brackets are not recognised.

    >>> find_formula_in_html("foo K<sub>2</sub>Cr<sub>2</sub>O<sub>7</sub> bar")
    'K₂Cr₂O₇'
    """
    if not html:
        return None
    match = _FORMULA_RE.search(html)
    while match is not None and html[match.end():match.end() + 1].isalpha():
        match = _FORMULA_RE.search(html, match.end())
    if match is None:
        return None
    formula = _SUB_TAG_RE.sub(lambda m: subscript(m.group(1)), match.group(0))
    formula = _SUP_TAG_RE.sub(lambda m: superscript(m.group(1)), formula)
    return subscript(formula)
