from undelete.cluster_history import ClusterHistory, OverwriteAnalysis


def test_record_stores_usage():
    history = ClusterHistory()
    history.record_cluster_usage(5, 1, 4096)
    (usage,) = history.cluster_usage_history[5]
    assert usage.file_id == 1
    assert usage.write_offset == 4096
    assert usage.is_deleted is True


def test_timestamps_do_not_decrease():
    history = ClusterHistory()
    for file_id in range(4):
        history.record_cluster_usage(9, file_id, 0)
    stamps = [u.timestamp for u in history.cluster_usage_history[9]]
    assert stamps == sorted(stamps)


def test_unknown_cluster_has_no_overlaps():
    history = ClusterHistory()
    assert history.find_overlapping_usage(42) == []
    assert 42 not in history.cluster_usage_history


def test_same_file_does_not_overlap_itself():
    history = ClusterHistory()
    history.record_cluster_usage(5, 1, 0)
    history.record_cluster_usage(5, 1, 512)
    assert history.find_overlapping_usage(5) == []


def test_two_files_overlap_in_recording_order():
    history = ClusterHistory()
    history.record_cluster_usage(5, 1, 0)
    history.record_cluster_usage(5, 2, 0)
    overlaps = history.find_overlapping_usage(5)
    assert len(overlaps) == 1
    first, second = overlaps[0]
    assert (first.file_id, second.file_id) == (1, 2)


def test_three_files_give_every_pair():
    history = ClusterHistory()
    for file_id in (1, 2, 3):
        history.record_cluster_usage(7, file_id, 0)
    pairs = [(a.file_id, b.file_id) for a, b in history.find_overlapping_usage(7)]
    assert pairs == [(1, 2), (1, 3), (2, 3)]


def test_clusters_are_tracked_separately():
    history = ClusterHistory()
    history.record_cluster_usage(3, 1, 0)
    history.record_cluster_usage(4, 2, 0)
    assert history.find_overlapping_usage(3) == []
    assert history.find_overlapping_usage(4) == []


def test_overwrite_analysis_defaults_are_independent():
    first = OverwriteAnalysis()
    second = OverwriteAnalysis()
    first.overwritten_by[3] = [1]
    assert second.overwritten_by == {}
    assert second.has_overwrite is False