##########################################################################################
#
# Script name: test_diversity.py
#
# Description: Source diversity scheduling and the full merge pipeline.
#
##########################################################################################

from datetime import datetime, timedelta, timezone

from market_tracker.diversity import merge_diverse, schedule, source_of
from market_tracker.models import NewsRecord


BASE_TIME = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _record(record_id: str, source: str, minutes_ago: int | None) -> NewsRecord:
    published = BASE_TIME - timedelta(minutes=minutes_ago) if minutes_ago is not None else None
    return NewsRecord(
        id=record_id,
        title=f'Story {record_id}',
        link=f'https://{source.lower()}.example.com/{record_id}',
        source_name=source,
        published_at=published,
    )


def _sources(records: list[NewsRecord]) -> list[str]:
    return [source_of(record) for record in records]


def test_source_of_falls_back_through_id_host_and_unknown() -> None:
    assert source_of(NewsRecord(id='1', title='t', link='', source_name='Named')) == 'Named'
    assert source_of(NewsRecord(id='2', title='t', link='', source_id='by-id')) == 'by-id'
    assert source_of(NewsRecord(id='3', title='t', link='https://Host.example.com/a')) == 'host.example.com'
    assert source_of(NewsRecord(id='4', title='t', link='')) == 'unknown'


def test_source_of_skips_blank_names() -> None:
    assert source_of(NewsRecord(id='1', title='t', link='', source_name='   ', source_id='by-id')) == 'by-id'
    record = NewsRecord(id='2', title='t', link='https://news.example.com/a', source_name='\t', source_id=' ')
    assert source_of(record) == 'news.example.com'
    assert source_of(NewsRecord(id='3', title='t', link='', source_name=' Padded ')) == 'Padded'


def test_schedule_is_a_permutation() -> None:
    records = [
        _record('a1', 'A', 1),
        _record('a2', 'A', 2),
        _record('a3', 'A', 3),
        _record('b1', 'B', 4),
        _record('c1', 'C', None),
    ]
    for threshold in (1, 2, 3, 10):
        output = schedule(records, threshold)
        assert sorted(record.id for record in output) == sorted(record.id for record in records)
        assert len(output) == len(records)


def test_schedule_sorts_newest_first_with_undated_last() -> None:
    records = [_record('old', 'A', 30), _record('none', 'B', None), _record('new', 'C', 1)]
    assert [record.id for record in schedule(records, 5)] == ['new', 'old', 'none']


def test_schedule_threshold_one_alternates_sources() -> None:
    records = [
        _record('a1', 'A', 1),
        _record('a2', 'A', 2),
        _record('a3', 'A', 3),
        _record('b1', 'B', 4),
        _record('b2', 'B', 5),
        _record('b3', 'B', 6),
    ]
    output = schedule(records, 1)
    sources = _sources(output)
    for left, right in zip(sources, sources[1:]):
        assert left != right
    assert [record.id for record in output] == ['a1', 'b1', 'a2', 'b2', 'a3', 'b3']


def test_schedule_allows_tail_run_when_one_source_remains() -> None:
    records = [
        _record('a1', 'A', 1),
        _record('a2', 'A', 2),
        _record('a3', 'A', 3),
        _record('b1', 'B', 4),
    ]
    output = schedule(records, 1)
    assert [record.id for record in output] == ['a1', 'b1', 'a2', 'a3']


def test_schedule_threshold_two_allows_pairs() -> None:
    records = [
        _record('a1', 'A', 1),
        _record('a2', 'A', 2),
        _record('a3', 'A', 3),
        _record('b1', 'B', 4),
    ]
    output = schedule(records, 2)
    assert [record.id for record in output] == ['a1', 'a2', 'b1', 'a3']


def test_schedule_non_positive_threshold_is_passthrough() -> None:
    records = [_record('old', 'A', 30), _record('new', 'A', 1)]
    assert [record.id for record in schedule(records, 0)] == ['old', 'new']
    assert [record.id for record in schedule(records, -3)] == ['old', 'new']


def test_merge_diverse_dedupes_then_spreads_sources() -> None:
    duplicate = NewsRecord(
        id='dup',
        title='Story a1',
        link='https://a.example.com/a1/?utm_campaign=feed',
        source_name='A',
        published_at=BASE_TIME - timedelta(minutes=1),
        image_url='https://img.example.com/a1.png',
    )
    records = [
        _record('a1', 'A', 1),
        duplicate,
        _record('a2', 'A', 2),
        _record('b1', 'B', 3),
    ]
    output = merge_diverse(records, preferred_language='english', max_consecutive_per_source=1)
    assert [record.id for record in output] == ['dup', 'b1', 'a2']
