from datetime import timedelta

from tslafeed.news.dedup import (
    cap_media,
    dedup_key,
    deduplicate,
    exclude_sources,
    is_media_item,
    rank_and_cap,
    sort_newest_first,
    within_window,
)

from conftest import NOW


def test_trailing_slash_and_case_variants_collapse(make_item):
    a = make_item(link="https://www.Example.com/Story/")
    b = make_item(link="https://www.example.com/story")
    assert dedup_key(a) == dedup_key(b)
    assert deduplicate([a, b]) == [a]


def test_key_without_link_uses_title_and_source(make_item):
    item = make_item(title=" Tesla News ", link=None, source="Reuters")
    assert dedup_key(item) == ":tesla news:reuters"


def test_deduplicate_keeps_first_and_is_idempotent(make_item):
    items = [
        make_item(title="first", link="https://a.example.com/1"),
        make_item(title="dup", link="https://a.example.com/1/"),
        make_item(title="other", link="https://a.example.com/2"),
    ]
    once = deduplicate(items)
    assert [item.title for item in once] == ["first", "other"]
    assert deduplicate(once) == once


def test_exclude_sources(make_item):
    items = [make_item(source="electrek.co"), make_item(source="reuters.com")]
    assert [item.source for item in exclude_sources(items, [r"electrek\.co"])] == ["reuters.com"]


def test_window_drops_undated_and_old_items(make_item):
    fresh = make_item(title="fresh", age=timedelta(days=1))
    stale = make_item(title="stale", age=timedelta(days=8))
    edge = make_item(title="edge", age=timedelta(days=7))
    undated = make_item(title="undated", age=None)

    kept = within_window([fresh, stale, edge, undated], NOW, days=7)

    assert [item.title for item in kept] == ["fresh"]


def test_sort_newest_first_is_stable(make_item):
    a = make_item(title="a", age=timedelta(hours=2))
    b = make_item(title="b", age=timedelta(hours=1))
    c = make_item(title="c", age=timedelta(hours=2))
    assert [item.title for item in sort_newest_first([a, b, c])] == ["b", "a", "c"]


def test_is_media_item(make_item):
    assert is_media_item(make_item(link="https://www.youtube.com/watch?v=abc"))
    assert is_media_item(make_item(link="https://youtu.be/abc"))
    assert is_media_item(
        make_item(
            link="https://feeds.example.com/v",
            origin_feed_url="https://feeds.example.com/channel",
            provider_hint="youtube",
        )
    )
    assert not is_media_item(make_item(link="https://www.reuters.com/a"))


def test_cap_media_flags_and_limits(make_item):
    items = [make_item(link=f"https://www.youtube.com/watch?v={i}") for i in range(10)]
    others, media = cap_media(items, limit=7)
    assert others == []
    assert len(media) == 7
    assert all(item.is_youtube for item in media)


def test_rank_and_cap_limits_media_and_total(make_item):
    videos = [
        make_item(title=f"video {i}", link=f"https://www.youtube.com/watch?v={i}", age=timedelta(minutes=i))
        for i in range(10)
    ]
    articles = [
        make_item(title=f"article {i}", link=f"https://www.example.com/{i}", age=timedelta(minutes=30 + i))
        for i in range(5)
    ]

    ranked = rank_and_cap(videos + articles, NOW, max_items=250, max_media=7)

    assert len(ranked) == 12
    assert sum(item.is_youtube for item in ranked) == 7
    dates = [item.parsed_date for item in ranked]
    assert dates == sorted(dates, reverse=True)


def test_rank_and_cap_applies_media_filter(make_item):
    relevant = make_item(title="Tesla Cybertruck review", link="https://www.youtube.com/watch?v=1")
    noise = make_item(title="Cooking show", link="https://www.youtube.com/watch?v=2")

    ranked = rank_and_cap(
        [relevant, noise], NOW, media_filter=lambda item: "Tesla" in item.title
    )

    assert [item.title for item in ranked] == ["Tesla Cybertruck review"]


def test_rank_and_cap_truncates(make_item):
    items = [
        make_item(title=str(i), link=f"https://www.example.com/{i}", age=timedelta(minutes=i))
        for i in range(20)
    ]
    ranked = rank_and_cap(items, NOW, max_items=5)
    assert [item.title for item in ranked] == ["0", "1", "2", "3", "4"]
