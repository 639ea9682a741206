import re
from typing import List, Tuple

from bs4 import BeautifulSoup

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+[^\s<>\"'.,;:!?)\]]")


def html_to_text(html: str) -> str:
    """Strip markup from a feed summary, dropping images and collapsing whitespace."""
    soup = BeautifulSoup(html, "html.parser")

    for img in soup.find_all("img"):
        img.decompose()

    text = soup.get_text(separator=" ")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n", "\n\n", text)
    return text.strip()


def find_links(text: str) -> List[Tuple[int, int, str]]:
    """
    Locate urls in text.
    Offsets are UTF-8 byte offsets (start, end, url), as rich-text facets expect.
    """
    links = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0)
        # A closing paren belongs to the url when it balances one inside it, e.g. /wiki/Foo_(bar)
        after = match.end()
        while text[after:after + 1] == ")" and url.count("(") > url.count(")"):
            url += ")"
            after += 1
        start = len(text[:match.start()].encode("utf-8"))
        end = start + len(url.encode("utf-8"))
        links.append((start, end, url))
    return links
