"""Tests for exporting matches and building candidates from the command line."""

import asyncio
import json
import zipfile

from conftest import BLUE, RED
from spotme.export import export_matches_zip, write_matches_json
from spotme.scanner.image_loader import ImageLoader
from spotme.scanner.main import build_candidates
from spotme.scanner.models import Candidate, CandidateSource, ScanResult, ScanStats


def test_write_matches_json(tmp_path):
    match = Candidate.from_url("https://photos.example/b.jpg", 1, name="b.jpg")
    result = ScanResult(
        matches=[match],
        stats=ScanStats(total=3, processed=3, found=1, start_time=10.0, current_file="c.jpg"),
        cancelled=False,
        errors=1,
    )
    output = tmp_path / "out" / "matches.json"

    write_matches_json(result, output)

    data = json.loads(output.read_text())
    assert data["state"] == "COMPLETE"
    assert data["stats"]["found"] == 1
    assert data["matches"] == [
        {"id": "web-1", "name": "b.jpg", "source": "REMOTE", "payload": "https://photos.example/b.jpg"}
    ]


def test_export_zip_skips_unreadable_photos(tmp_path, make_photo):
    first = Candidate.from_path(make_photo("IMG_1.png", RED), 0)
    # Same file name from another folder must not overwrite the first
    (tmp_path / "other").mkdir()
    second_path = tmp_path / "other" / "IMG_1.png"
    second_path.write_bytes(make_photo("tmp.png", BLUE).read_bytes())
    second = Candidate.from_path(second_path, 1)
    missing = Candidate.from_path(tmp_path / "gone.png", 2)
    zip_path = tmp_path / "spotme-photos.zip"

    written = asyncio.run(export_matches_zip([first, missing, second], zip_path, ImageLoader()))

    assert written == 2
    with zipfile.ZipFile(zip_path) as archive:
        assert sorted(archive.namelist()) == ["photos/IMG_1.png", "photos/IMG_1_1.png"]
        assert archive.read("photos/IMG_1.png") == (tmp_path / "IMG_1.png").read_bytes()


def test_build_candidates_from_arguments(tmp_path):
    candidates = build_candidates([
        str(tmp_path / "a.jpg"),
        "https://photos.example/party.jpg",
        str(tmp_path / "notes.txt"),
        str(tmp_path / "b.HEIC"),
    ])

    assert [c.source for c in candidates] == [
        CandidateSource.LOCAL,
        CandidateSource.REMOTE,
        CandidateSource.LOCAL,
    ]
    assert [c.id for c in candidates] == ["local-0-a.jpg", "web-1", "local-2-b.HEIC"]
    assert len({c.id for c in candidates}) == 3
