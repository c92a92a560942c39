import pytest

from subextract.errors import JellyfinClientError, OperationCancelledError
from subextract.interfaces import CancellationToken
from subextract.missing_subtitles_task import MissingSubtitlesTask, ScanSettings, run_missing_subtitles_check
from subextract.models import EpisodePage
from subextract.run_metrics import RunMetrics
from subextract.subtitle_artifacts import artifact_dir_for, has_extracted_subtitles


def _task(index, extractor, base, **settings_kw):
    settings = ScanSettings(subtitles_base_path=str(base), **settings_kw)
    return MissingSubtitlesTask(index, extractor, extractor, settings, metrics=RunMetrics())


def test_skips_episodes_that_already_have_subtitles(fx, subs_base, extractor, progress):
    ep1 = fx.episode(1, fx.sub(0, "spa"))
    ep2 = fx.episode(2, fx.sub(0, "spa"))
    done = artifact_dir_for(ep1.id, subs_base)
    done.mkdir(parents=True)
    (done / "0.srt").write_text("ya extraído")

    summary = _task(fx.Index({None: [ep1, ep2]}), extractor, subs_base).run(progress)

    assert extractor.calls == [ep2.id]
    assert summary.episodes_seen == 2
    assert summary.episodes_skipped == 1
    assert summary.episodes_processed == 1
    assert has_extracted_subtitles(ep2.id, subs_base) is True


def test_second_run_is_a_noop(fx, subs_base, extractor, progress):
    episodes = [fx.episode(n, fx.sub(0, "eng"), fx.sub(1, "spa")) for n in range(1, 4)]
    index = fx.Index({None: episodes})

    _task(index, extractor, subs_base).run(progress)
    assert len(extractor.calls) == 3

    summary = _task(index, extractor, subs_base).run(fx.Progress())
    assert len(extractor.calls) == 3
    assert summary.episodes_skipped == 3
    assert summary.episodes_processed == 0


def test_unwanted_languages_become_empty_placeholders(fx, subs_base, extractor, progress):
    ep = fx.episode(1, fx.sub(0, "spa"), fx.sub(1, "eng"), fx.sub(2, "fre"))

    summary = _task(
        fx.Index({None: [ep]}), extractor, subs_base, extract_spanish=True, extract_english=False
    ).run(progress)

    leaf = artifact_dir_for(ep.id, subs_base)
    assert (leaf / "0.srt").stat().st_size > 0
    assert (leaf / "1.srt").stat().st_size == 0
    assert (leaf / "2.srt").stat().st_size == 0
    assert summary.placeholders_written == 2
    assert has_extracted_subtitles(ep.id, subs_base) is True


def test_episode_with_only_unwanted_languages_is_rechecked(fx, subs_base, extractor, progress):
    ep = fx.episode(1, fx.sub(0, "fre"), fx.sub(1, None))
    index = fx.Index({None: [ep]})

    _task(index, extractor, subs_base).run(progress)
    assert has_extracted_subtitles(ep.id, subs_base) is False

    _task(index, extractor, subs_base).run(fx.Progress())
    assert extractor.calls == [ep.id, ep.id]


def test_progress_is_weighted_per_root_and_ends_at_100(fx, subs_base, extractor, progress):
    root_a, root_b = fx.item_id(100), fx.item_id(200)
    episodes = [fx.episode(n, fx.sub(0, "spa")) for n in range(1, 5)]
    index = fx.Index({root_a: episodes, root_b: []}, folders={"Series": root_a, "Anime": root_b})

    summary = _task(index, extractor, subs_base, libraries=("Series", "Anime"), page_size=3).run(progress)

    assert progress.values == [12.5, 25.0, 37.5, 50.0, 100.0]
    assert progress.values == sorted(progress.values)
    assert index.count_calls == [root_a, root_b]
    assert index.page_calls == [(root_a, 0, 3), (root_a, 3, 3)]
    assert summary.roots_scanned == 2


def test_unresolved_library_names_fall_back_to_whole_catalog(fx, subs_base, extractor, progress):
    ep = fx.episode(1, fx.sub(0, "spa"))
    index = fx.Index({None: [ep]}, folders={})

    summary = _task(index, extractor, subs_base, libraries=("Borrada",)).run(progress)

    assert index.count_calls == [None]
    assert summary.episodes_processed == 1
    assert progress.values[-1] == 100.0


def test_empty_page_ends_the_root_early(fx, subs_base, extractor, progress):
    episodes = [fx.episode(n, fx.sub(0, "spa")) for n in range(1, 3)]
    index = fx.Index({None: episodes}, count_override={None: 5})

    summary = _task(index, extractor, subs_base, page_size=2).run(progress)

    assert index.page_calls == [(None, 0, 2), (None, 2, 2)]
    assert summary.episodes_seen == 2
    assert progress.values == [20.0, 40.0, 100.0]


def test_cancellation_stops_before_next_episode(fx, subs_base, extractor):
    episodes = [fx.episode(n, fx.sub(0, "spa")) for n in range(1, 6)]
    token = CancellationToken()
    recorder = fx.Progress()

    def sink(value):
        recorder(value)
        if len(recorder.values) == 2:
            token.cancel()

    with pytest.raises(OperationCancelledError):
        _task(fx.Index({None: episodes}), extractor, subs_base).run(sink, token)

    assert extractor.calls == [episodes[0].id, episodes[1].id]
    assert has_extracted_subtitles(episodes[1].id, subs_base) is True
    assert has_extracted_subtitles(episodes[2].id, subs_base) is False
    assert recorder.values[-1] < 100.0


def test_failed_episode_is_purged_and_scan_continues(fx, subs_base, progress):
    ep1 = fx.episode(1, fx.sub(0, "spa"), fx.sub(1, "eng"))
    ep2 = fx.episode(2, fx.sub(0, "spa"))
    extractor = fx.Extractor(subs_base, fail_for=[ep1.id])

    summary = _task(fx.Index({None: [ep1, ep2]}), extractor, subs_base).run(progress)

    assert summary.episodes_failed == 1
    assert summary.failed_episode_ids == [ep1.id]
    assert summary.episodes_processed == 1
    assert list(artifact_dir_for(ep1.id, subs_base).iterdir()) == []
    assert has_extracted_subtitles(ep1.id, subs_base) is False
    assert has_extracted_subtitles(ep2.id, subs_base) is True
    assert progress.values[-1] == 100.0


def test_dry_run_does_not_extract(fx, subs_base, extractor, progress):
    ep = fx.episode(1, fx.sub(0, "spa"))

    summary = _task(fx.Index({None: [ep]}), extractor, subs_base, dry_run=True).run(progress)

    assert extractor.calls == []
    assert summary.episodes_missing == 1
    assert summary.episodes_processed == 0
    assert progress.values == [100.0, 100.0]


def test_index_failure_propagates(fx, subs_base, extractor, progress):
    class BrokenIndex(fx.Index):
        def count_episodes(self, root_id):
            raise JellyfinClientError("items_count", "error:ConnectionError()")

    with pytest.raises(JellyfinClientError):
        _task(BrokenIndex({}), extractor, subs_base).run(progress)

    assert extractor.calls == []


def test_functional_wrapper_runs_the_task(fx, subs_base, extractor, progress):
    ep = fx.episode(1, fx.sub(0, "spa"))
    settings = ScanSettings(subtitles_base_path=str(subs_base))

    summary = run_missing_subtitles_check(
        fx.Index({None: [ep]}), extractor, extractor, settings, progress, metrics_enabled=False
    )

    assert summary.episodes_processed == 1
    assert progress.values[-1] == 100.0


def test_settings_from_config_mirror_env_constants():
    from subextract import config as cfg

    settings = ScanSettings.from_config()

    assert settings.extract_spanish is cfg.EXTRACT_SPANISH
    assert settings.extract_english is cfg.EXTRACT_ENGLISH
    assert settings.libraries == tuple(cfg.SELECTED_SUBTITLES_LIBRARIES)
    assert settings.page_size == cfg.SUBTITLES_QUERY_PAGE_LIMIT
    assert settings.subtitles_base_path == cfg.SUBTITLES_BASE_PATH
    assert settings.dry_run is False


def test_progress_with_uneven_roots_gives_each_root_equal_weight(fx, subs_base, extractor, progress):
    root_a, root_b = fx.item_id(100), fx.item_id(200)
    index = fx.Index(
        {
            root_a: [fx.episode(n, fx.sub(0, "spa")) for n in range(1, 5)],
            root_b: [fx.episode(n, fx.sub(0, "spa")) for n in range(5, 7)],
        },
        folders={"Series": root_a, "Anime": root_b},
    )

    summary = _task(index, extractor, subs_base, libraries=("Series", "Anime"), page_size=3).run(progress)

    assert progress.values == [12.5, 25.0, 37.5, 50.0, 75.0, 100.0, 100.0]
    assert index.page_calls == [(root_a, 0, 3), (root_a, 3, 3), (root_b, 0, 3)]
    assert summary.episodes_processed == 6


def test_cancel_requested_during_extraction_finishes_the_episode_cleanup(fx, subs_base, progress):
    ep1 = fx.episode(1, fx.sub(0, "spa"), fx.sub(1, "eng"), fx.sub(2, "fre"))
    ep2 = fx.episode(2, fx.sub(0, "spa"))
    token = CancellationToken()
    extractor = fx.Extractor(subs_base, on_extract=lambda _source: token.cancel())

    with pytest.raises(OperationCancelledError):
        _task(
            fx.Index({None: [ep1, ep2]}), extractor, subs_base, extract_spanish=True, extract_english=False
        ).run(progress, token)

    assert token.is_cancellation_requested is True
    assert extractor.calls == [ep1.id]
    leaf = artifact_dir_for(ep1.id, subs_base)
    assert (leaf / "0.srt").stat().st_size > 0
    assert (leaf / "1.srt").stat().st_size == 0
    assert (leaf / "2.srt").stat().st_size == 0
    assert has_extracted_subtitles(ep2.id, subs_base) is False

    # el siguiente run ve el episodio terminado y no lo toca
    rerun = fx.Extractor(subs_base)
    _task(fx.Index({None: [ep1]}), rerun, subs_base, extract_spanish=True, extract_english=False).run(fx.Progress())
    assert rerun.calls == []
    assert (leaf / "1.srt").stat().st_size == 0
    assert (leaf / "2.srt").stat().st_size == 0


def test_cancellation_raised_inside_an_episode_purges_it(fx, subs_base, progress):
    ep1 = fx.episode(1, fx.sub(0, "spa"), fx.sub(1, "fre"))
    ep2 = fx.episode(2, fx.sub(0, "spa"))

    def interrupt(_source):
        raise OperationCancelledError("cancelación solicitada")

    extractor = fx.Extractor(subs_base, on_extract=interrupt)

    with pytest.raises(OperationCancelledError):
        _task(fx.Index({None: [ep1, ep2]}), extractor, subs_base).run(progress)

    assert extractor.calls == [ep1.id]
    assert has_extracted_subtitles(ep1.id, subs_base) is False
    assert list(artifact_dir_for(ep1.id, subs_base).iterdir()) == []


def test_page_of_unreadable_items_does_not_end_the_root(fx, subs_base, extractor, progress):
    episodes = [fx.episode(n, fx.sub(0, "spa")) for n in range(1, 5)]
    index = fx.Index({None: episodes}, pages={(None, 0): EpisodePage(episodes=(), fetched=2)})
    metrics = RunMetrics()
    task = MissingSubtitlesTask(
        index, extractor, extractor, ScanSettings(subtitles_base_path=str(subs_base), page_size=2), metrics=metrics
    )

    summary = task.run(progress)

    assert index.page_calls == [(None, 0, 2), (None, 2, 2)]
    assert extractor.calls == [episodes[2].id, episodes[3].id]
    assert summary.episodes_seen == 2
    assert metrics.get("subs.episodes.malformed") == 2
    assert progress.values == [50.0, 75.0, 100.0, 100.0]
