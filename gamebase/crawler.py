"""Collect public Teamfight Tactics pages and turn them into seed guide posts."""

from __future__ import annotations

import argparse
import html
import json
import re
import sys
import urllib.error
import urllib.request
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import date
from urllib.parse import urljoin

PATCH_INDEX_URL = "https://teamfighttactics.leagueoflegends.com/en-us/news/tags/patch-notes/"
FALLBACK_PATCH_URL = (
    "https://teamfighttactics.leagueoflegends.com/en-us/news/game-updates/teamfight-tactics-patch-17-1/"
)
FALLBACK_SET_URL = (
    "https://teamfighttactics.leagueoflegends.com/en-us/news/game-updates/tft-set-17-space-gods-overview/"
)
SITE_BASE_URL = "https://teamfighttactics.leagueoflegends.com"

USER_AGENT = "gamebase-tft-crawler/1.0"
FETCH_TIMEOUT = 20.0
MAX_BODY_BYTES = 4 << 20

EMPTY_BULLET = "- 暂无可提取内容。"
NO_GUIDE_LINKS = "官方补丁页内未发现外部阵容数据入口，可以先使用官方资料补充站内攻略。"
DEFAULT_SEASON = "最新赛季"

POINT_KEYWORDS = (
    "space gods",
    "set 17",
    "realm of the gods",
    "god",
    "boon",
    "ranked",
    "encounter",
    "augment",
    "item",
    "champion",
    "carousel",
)
GUIDE_HOSTS = ("metatft.com", "mobalytics.gg", "tacter.com")

_HREF_PATCH_RE = re.compile(r'href="([^"]*teamfight-tactics-patch-[^"]*/)"')
_HREF_RE = re.compile(r'href="([^"]+)"')
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.I | re.S)
_META_DESC_RE = re.compile(
    r"""<meta[^>]+name=["']description["'][^>]+content=["']([^"']*)["']""", re.I | re.S
)
_OG_TITLE_RE = re.compile(
    r"""<meta[^>]+property=["']og:title["'][^>]+content=["']([^"']*)["']""", re.I | re.S
)
_BLOCK_RE = re.compile(
    r"<(?:h1|h2|h3|h4|p|li|blockquote)[^>]*>(.*?)</(?:h1|h2|h3|h4|p|li|blockquote)>", re.I | re.S
)
_TAG_RE = re.compile(r"<[^>]+>", re.I | re.S)
_SPACE_RE = re.compile(r"[\t\n\f\r ]+")


@dataclass
class CrawlSource:
    """One crawled page reduced to the parts used for articles."""

    title: str = ""
    url: str = ""
    description: str = ""
    points: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SeedArticle:
    """A generated guide post."""

    title: str
    content: str


def fetch_text(url: str, timeout: float = FETCH_TIMEOUT) -> str:
    """GET a page and return its body (at most 4 MiB) as text."""
    request = urllib.request.Request(url, method="GET", headers={"User-Agent": USER_AGENT})
    with urllib.request.urlopen(request, timeout=timeout) as response:
        status = getattr(response, "status", 200)
        if status < 200 or status >= 300:
            raise ConnectionError(f"GET {url} returned {status}")
        body = response.read(MAX_BODY_BYTES)
    return body.decode("utf-8", errors="replace")


def crawl_sources(fetch: Callable[[str], str] | None = None) -> list[CrawlSource]:
    """Crawl the latest patch notes and set overview pages."""
    get = fetch if fetch is not None else fetch_text

    index_html = get(PATCH_INDEX_URL)
    patch_url = discover_latest_patch_url(index_html) or FALLBACK_PATCH_URL

    patch_html = get(patch_url)
    set_url = discover_set_overview_url(patch_html) or FALLBACK_SET_URL

    set_html = get(set_url)
    return [parse_source(patch_url, patch_html), parse_source(set_url, set_html)]


def discover_latest_patch_url(index_html: str) -> str:
    """Return the first patch-notes link found on the index page, or ''."""
    for match in _HREF_PATCH_RE.finditer(index_html):
        url = normalize_riot_url(match.group(1))
        if url:
            return url
    return ""


def discover_set_overview_url(patch_html: str) -> str:
    """Return the first link that looks like the set overview page, or ''."""
    for match in _HREF_RE.finditer(patch_html):
        link = html.unescape(match.group(1))
        lower = link.lower()
        if "space-gods-overview" in lower or "set-17" in lower:
            return normalize_riot_url(link)
    return ""


def normalize_riot_url(raw: str) -> str:
    """Make a link absolute against the official site; '' for anchors and blanks."""
    raw = html.unescape(raw.strip())
    if not raw or raw.startswith("#"):
        return ""
    if raw.startswith(("http://", "https://")):
        return raw
    try:
        return urljoin(SITE_BASE_URL, raw)
    except ValueError:
        return ""


def parse_source(url: str, page_html: str) -> CrawlSource:
    """Extract title, description, key points and guide links from a page."""
    return CrawlSource(
        title=extract_title(page_html) or url,
        url=url,
        description=extract_description(page_html),
        points=extract_points(page_html, 10),
        links=extract_external_guide_links(page_html),
    )


def extract_title(page_html: str) -> str:
    """Return the og:title, else the <title> text, else ''."""
    for pattern in (_OG_TITLE_RE, _TITLE_RE):
        match = pattern.search(page_html)
        if match:
            return clean_text(match.group(1))
    return ""


def extract_description(page_html: str) -> str:
    """Return the meta description, or ''."""
    match = _META_DESC_RE.search(page_html)
    return clean_text(match.group(1)) if match else ""


def extract_points(page_html: str, limit: int = 10) -> list[str]:
    """Return distinct text blocks of 18–260 characters that mention a keyword."""
    points: list[str] = []
    seen: set[str] = set()
    for match in _BLOCK_RE.finditer(page_html):
        text = clean_text(match.group(1))
        if not 18 <= len(text) <= 260:
            continue
        if not contains_any(text.lower(), POINT_KEYWORDS) or text in seen:
            continue
        seen.add(text)
        points.append(text)
        if len(points) >= limit:
            break
    return points


def extract_external_guide_links(page_html: str) -> list[str]:
    """Return up to three distinct links to known composition data sites."""
    links: list[str] = []
    seen: set[str] = set()
    for match in _HREF_RE.finditer(page_html):
        link = html.unescape(match.group(1))
        if not contains_any(link.lower(), GUIDE_HOSTS) or link in seen:
            continue
        seen.add(link)
        links.append(link)
        if len(links) >= 3:
            break
    return links


def build_seed_articles(sources: Sequence[CrawlSource], today: date | None = None) -> list[SeedArticle]:
    """Compose the quick-start, patch and resource guide posts."""
    patch = first_source_containing(sources, "patch")
    overview = first_source_containing(sources, "overview")
    if not patch.url and len(sources) > 0:
        patch = sources[0]
    if not overview.url and len(sources) > 1:
        overview = sources[1]

    season = detect_season_name(sources)
    stamp = (today or date.today()).isoformat()

    quick_start = SeedArticle(
        title=f"云顶之弈 Set 17 {season} 快速上手攻略",
        content=join_sections(
            f"采集时间：{stamp}",
            f"赛季主题：Set 17 {season}",
            "这篇帖子由爬虫根据 Riot 官方公开页面整理，适合作为新赛季开荒入口。",
            "核心机制：",
            bullet_list(merge_points(overview.points, patch.points, 6)),
            "上分建议：",
            bullet_list(
                [
                    "开局先观察 Realm of the Gods / 神明赐福给到的组件和方向，再决定连胜、连败或经济节奏。",
                    "前两阶段优先做通用强装备，等核心弈子和羁绊成型后再补专属装备。",
                    "新赛季初阵容波动会比较大，建议先收藏 2-3 套低费过渡线，再根据商店来转高费主 C。",
                    "如果版本刚更新，优先参考官方改动和数据站趋势，不要只照搬单一阵容。",
                ]
            ),
            source_section(patch, overview),
        ),
    )

    patch_guide = SeedArticle(
        title="云顶之弈 17.1 版本更新重点与开荒提醒",
        content=join_sections(
            f"采集时间：{stamp}",
            "版本定位：17.1 是 Set 17 Space Gods 的上线版本，适合先了解机制、排位重置和环境变化。",
            "官方页面摘要：",
            bullet_list(non_empty([patch.description])),
            "值得优先关注：",
            bullet_list(merge_points(patch.points, None, 8)),
            "开荒提醒：",
            bullet_list(
                [
                    "先熟悉新赛季的基础机制，再追求特定阵容排名。",
                    "排位初期波动大，保前四比强行追三星更稳定。",
                    "遇到高强度热补丁时，优先更新过渡阵容和装备优先级。",
                ]
            ),
            source_section(patch),
        ),
    )

    source_guide = SeedArticle(
        title="云顶之弈最新赛季资料与阵容数据入口",
        content=join_sections(
            f"采集时间：{stamp}",
            "这个帖子整理最新赛季的官方资料入口和阵容数据入口，方便后续手动补充更细的阵容攻略。",
            "官方资料：",
            bullet_list([f"{overview.title}：{overview.url}", f"{patch.title}：{patch.url}"]),
            "阵容数据入口：",
            bullet_list(collect_guide_links(sources)),
            "使用建议：",
            bullet_list(
                [
                    "官方资料看机制、改动和赛季规则。",
                    "数据站看登场率、前四率、吃鸡率和装备搭配。",
                    "站内帖子可以继续补充实战复盘，比如运营节奏、站位和变阵条件。",
                ]
            ),
        ),
    )

    return [quick_start, patch_guide, source_guide]


def first_source_containing(sources: Iterable[CrawlSource], keyword: str) -> CrawlSource:
    """Return the first source whose title or URL contains keyword, else an empty one."""
    keyword = keyword.lower()
    for source in sources:
        if keyword in source.title.lower() or keyword in source.url.lower():
            return source
    return CrawlSource()


def detect_season_name(sources: Iterable[CrawlSource]) -> str:
    """Return 'Space Gods' when any source mentions it, else the generic season name."""
    for source in sources:
        text = " ".join([source.title, source.description, " ".join(source.points)]).lower()
        if "space gods" in text:
            return "Space Gods"
    return DEFAULT_SEASON


def merge_points(
    primary: Iterable[str] | None, secondary: Iterable[str] | None, limit: int
) -> list[str]:
    """Merge two point lists, trimmed and de-duplicated, up to limit items."""
    out: list[str] = []
    seen: set[str] = set()
    for group in (primary or (), secondary or ()):
        for item in group:
            item = item.strip()
            if not item or item in seen:
                continue
            seen.add(item)
            out.append(item)
            if len(out) >= limit:
                return out
    return out


def collect_guide_links(sources: Iterable[CrawlSource]) -> list[str]:
    """Gather distinct guide links from all sources, or a placeholder line."""
    out: list[str] = []
    for source in sources:
        for link in source.links:
            if link not in out:
                out.append(link)
    return out or [NO_GUIDE_LINKS]


def source_section(*sources: CrawlSource) -> str:
    """Render the list of source links, skipping sources without a URL."""
    lines = ["来源链接："]
    lines.extend(f"- {s.title}：{s.url}" for s in sources if s.url)
    return "\n".join(lines)


def bullet_list(items: Iterable[str]) -> str:
    """Render items as '- ' bullets; a placeholder line when nothing is left."""
    lines = [f"- {item}" for item in (i.strip() for i in items) if item]
    return "\n".join(lines) if lines else EMPTY_BULLET


def non_empty(items: Iterable[str]) -> list[str]:
    """Return the trimmed items that are not blank."""
    return [item for item in (i.strip() for i in items) if item]


def join_sections(*sections: str) -> str:
    """Join trimmed non-empty sections with blank lines."""
    return "\n\n".join(s for s in (sec.strip() for sec in sections) if s)


def clean_text(value: str) -> str:
    """Strip tags and entities and collapse whitespace."""
    for br in ("<br>", "<br/>", "<br />"):
        value = value.replace(br, " ")
    value = _TAG_RE.sub(" ", value)
    value = html.unescape(value)
    value = value.replace("\u00a0", " ")
    value = _SPACE_RE.sub(" ", value)
    return value.strip()


def contains_any(value: str, keywords: Iterable[str]) -> bool:
    """Tell whether value contains any keyword (keywords compared lower-cased)."""
    return any(keyword.lower() in value for keyword in keywords)


def truncate_runes(value: str, limit: int) -> str:
    """Cut value to at most limit characters."""
    return value if len(value) <= limit else value[:limit]


def main(argv: Sequence[str] | None = None) -> int:
    """Crawl the official pages and print (or save) the generated articles."""
    parser = argparse.ArgumentParser(prog="tft-crawler", description=__doc__)
    parser.add_argument("--max-posts", type=int, default=3, help="max posts to produce")
    parser.add_argument("--output", help="also write the articles as JSON to this file")
    args = parser.parse_args(argv)

    if args.max_posts <= 0:
        print("max-posts must be greater than 0")
        return 1

    try:
        sources = crawl_sources()
    except (OSError, urllib.error.URLError, ValueError) as exc:
        print(f"crawl tft sources failed, err:{exc}")
        return 1

    articles = build_seed_articles(sources)[: args.max_posts]
    articles = [
        SeedArticle(truncate_runes(a.title, 128), truncate_runes(a.content, 8192)) for a in articles
    ]
    for article in articles:
        print(f"\n===== {article.title} =====\n{article.content}")

    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            json.dump([asdict(a) for a in articles], handle, ensure_ascii=False, indent=2)
    return 0


if __name__ == "__main__":
    sys.exit(main())