"""Tests for artifact fingerprints and reuse decisions."""

import os

from discwright.cache import ArtifactCache, fingerprint


def test_fingerprint_is_stable_and_parameter_sensitive(tmp_path):
    source = tmp_path / "in.wav"
    source.write_bytes(b"abc")

    key = fingerprint(["ffmpeg", "-i", str(source)], inputs=(source,))

    assert key == fingerprint(["ffmpeg", "-i", str(source)], inputs=(source,))
    assert key != fingerprint(["ffmpeg", "-i", str(source), "-af", "adelay=5|5"], inputs=(source,))


def test_fingerprint_follows_input_changes(tmp_path):
    source = tmp_path / "in.wav"
    source.write_bytes(b"abc")
    before = fingerprint("params", inputs=(source,))

    source.write_bytes(b"abcdef")

    assert fingerprint("params", inputs=(source,)) != before


def test_missing_artifact_is_not_fresh(tmp_path):
    assert not ArtifactCache().is_fresh(tmp_path / "movie.mpg", "key")


def test_recorded_artifact_is_fresh(tmp_path):
    artifact = tmp_path / "movie.mpg"
    artifact.write_bytes(b"mpeg")
    cache = ArtifactCache()
    cache.record(artifact, "key")

    assert (tmp_path / "movie.mpg.fingerprint").read_text().strip() == "key"
    assert cache.is_fresh(artifact, "key")
    assert not cache.is_fresh(artifact, "other")


def test_force_rebuild_ignores_existing_artifacts(tmp_path):
    artifact = tmp_path / "movie.mpg"
    artifact.write_bytes(b"mpeg")
    ArtifactCache().record(artifact, "key")

    assert not ArtifactCache(force_rebuild=True).is_fresh(artifact, "key")


def test_artifact_without_fingerprint_is_reused(tmp_path, caplog):
    artifact = tmp_path / "movie.mpg"
    artifact.write_bytes(b"mpeg")

    assert ArtifactCache().is_fresh(artifact, "key")
    assert "without a recorded fingerprint" in caplog.text


def test_unfinished_build_is_redone(tmp_path):
    artifact = tmp_path / "movie.mpg"
    cache = ArtifactCache()
    cache.begin(artifact)
    artifact.write_bytes(b"partial")

    assert not cache.is_fresh(artifact, "key")


def test_custom_stamp_location(tmp_path):
    tree = tmp_path / "dvd" / "VIDEO_TS"
    tree.mkdir(parents=True)
    ifo = tree / "VIDEO_TS.IFO"
    ifo.write_bytes(b"IFO")
    stamp = tmp_path / "dvd.fingerprint"
    cache = ArtifactCache()

    cache.record(ifo, "key", stamp=stamp)

    assert cache.is_fresh(ifo, "key", stamp=stamp)
    assert os.listdir(tree) == ["VIDEO_TS.IFO"]
