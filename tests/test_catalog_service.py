import os

import pytest

from diveplay.domain.media import MediaKind
from diveplay.services.catalog_service import CatalogBuilder
from diveplay.services.storage_service import LocalStorageProvider


class ReversedStorage(LocalStorageProvider):
    def list_children(self, directory):
        return list(reversed(sorted(super().list_children(directory), key=lambda e: e.name)))


class LockedDirStorage(LocalStorageProvider):
    def __init__(self, locked_name):
        self.locked_name = locked_name

    def list_children(self, directory):
        if directory.name == self.locked_name:
            raise PermissionError(13, "Permission denied", str(directory))
        return super().list_children(directory)


def test_pairs_subtitles_by_directory_and_stem(make_tree):
    root = make_tree("a.mp4", "sub/b.mkv", "sub/b.srt")

    result = CatalogBuilder().build(root)

    assert [i.relative_path for i in result.catalog] == ["a.mp4", "sub/b.mkv"]
    a, b = result.catalog
    assert a.subtitles == ()
    assert [s.relative_path for s in b.subtitles] == ["sub/b.srt"]
    assert b.kind is MediaKind.VIDEO
    assert b.name == "b.mkv"
    assert not result.degraded


def test_order_does_not_depend_on_traversal_order(make_tree):
    root = make_tree("z.mp3", "b/c.mp4", "a.mkv", "b/a.flac")

    forward = CatalogBuilder().build(root)
    backward = CatalogBuilder(storage=ReversedStorage()).build(root)

    expected = ["a.mkv", "b/a.flac", "b/c.mp4", "z.mp3"]
    assert [i.relative_path for i in forward.catalog] == expected
    assert [i.relative_path for i in backward.catalog] == expected


def test_extensions_are_case_insensitive_and_unknown_files_ignored(make_tree):
    root = make_tree("Clip.MP4", "song.Mp3", "notes.txt", "cover.jpg", "README")

    result = CatalogBuilder().build(root)

    assert [(i.relative_path, i.kind) for i in result.catalog] == [
        ("Clip.MP4", MediaKind.VIDEO),
        ("song.Mp3", MediaKind.AUDIO),
    ]


def test_several_subtitles_are_attached_in_path_order(make_tree):
    root = make_tree("movie.mkv", "movie.vtt", "movie.srt", "other.srt")

    (movie,) = CatalogBuilder().build(root).catalog

    assert [s.relative_path for s in movie.subtitles] == ["movie.srt", "movie.vtt"]


def test_orphan_subtitles_are_not_catalog_items(make_tree):
    root = make_tree("lonely.srt")

    assert CatalogBuilder().build(root).catalog == ()


def test_custom_extension_sets(make_tree):
    root = make_tree("a.mp4", "b.ogv", "b.ass")

    builder = CatalogBuilder(
        video_extensions=["ogv"], audio_extensions=[], subtitle_extensions=[".ASS"]
    )
    result = builder.build(root)

    assert [i.relative_path for i in result.catalog] == ["b.ogv"]
    assert [s.relative_path for s in result.catalog[0].subtitles] == ["b.ass"]


def test_unreadable_subtree_is_skipped_and_reported(make_tree):
    root = make_tree("a.mp4", "locked/hidden.mp4", "open/b.mp4")

    result = CatalogBuilder(storage=LockedDirStorage("locked")).build(root)

    assert [i.relative_path for i in result.catalog] == ["a.mp4", "open/b.mp4"]
    assert result.degraded
    assert result.failed_dirs == (root / "locked",)


def test_directory_symlinks_are_not_followed(make_tree, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "x.mp4").write_bytes(b"x")
    root = make_tree("a.mp4")
    try:
        os.symlink(outside, root / "link", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported here")

    result = CatalogBuilder().build(root)

    assert [i.relative_path for i in result.catalog] == ["a.mp4"]


def test_root_must_be_a_directory(make_tree):
    root = make_tree("a.mp4")

    with pytest.raises(NotADirectoryError):
        CatalogBuilder().build(root / "a.mp4")


def test_find_by_relative_path(make_tree):
    root = make_tree("a.mp4", "sub/b.mkv")
    result = CatalogBuilder().build(root)

    assert result.find("sub/b.mkv").name == "b.mkv"
    assert result.find("old.mp4") is None
