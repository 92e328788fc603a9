"""Tests for candidate image loading and decoding."""

import asyncio
import io
import time
from pathlib import Path

import httpx
import pytest
from PIL import Image

from conftest import ALICE, RED, ColorDescriptorService, solid_image
from spotme.errors import ImageLoadError
from spotme.faces.matcher import MatchEvaluator
from spotme.scanner import image_loader
from spotme.scanner.coordinator import ScanCoordinator
from spotme.scanner.image_loader import ImageLoader
from spotme.scanner.image_utils import decode_image, is_supported_image
from spotme.scanner.models import Candidate


def png_bytes(color=RED, size=(64, 48)) -> bytes:
    buffer = io.BytesIO()
    solid_image(color, size).save(buffer, format="PNG")
    return buffer.getvalue()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_local_candidate_is_decoded_and_released(make_photo):
    path = make_photo("party.png", RED)
    candidate = Candidate.from_path(path, 0)

    async def scenario():
        async with ImageLoader() as loader:
            async with loader.open(candidate) as image:
                assert image.mode == "RGB"
                assert image.size == (64, 48)
                assert image.getpixel((0, 0)) == RED
            return loader.open_count, loader.release_count

    assert asyncio.run(scenario()) == (1, 1)


def test_large_images_are_downscaled(make_photo):
    path = make_photo("big.png", RED, size=(2000, 1000))

    async def scenario():
        async with ImageLoader(max_size=512) as loader:
            async with loader.open(Candidate.from_path(path, 0)) as image:
                return image.size

    assert asyncio.run(scenario()) == (512, 256)


def test_missing_local_file_raises_without_acquiring(tmp_path):
    candidate = Candidate.from_path(tmp_path / "gone.jpg", 0)

    async def scenario():
        loader = ImageLoader()
        with pytest.raises(ImageLoadError):
            async with loader.open(candidate):
                pass
        return loader.open_count, loader.release_count

    assert asyncio.run(scenario()) == (0, 0)


def test_corrupt_file_raises_image_load_error(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"definitely not a jpeg")

    async def scenario():
        loader = ImageLoader()
        with pytest.raises(ImageLoadError):
            await loader.load(Candidate.from_path(path, 0))

    asyncio.run(scenario())


def test_image_released_when_evaluation_fails(make_photo):
    candidate = Candidate.from_path(make_photo("a.png", RED), 0)

    async def scenario():
        loader = ImageLoader()
        with pytest.raises(RuntimeError):
            async with loader.open(candidate):
                raise RuntimeError("detector exploded")
        return loader.open_count, loader.release_count

    assert asyncio.run(scenario()) == (1, 1)


@pytest.fixture
def slow_decode(monkeypatch):
    """Make decoding take 0.2s and record which decoded images get closed."""
    closed = []

    def decode(data, max_size):
        time.sleep(0.2)
        image = decode_image(data, max_size)
        original_close = image.close

        def close():
            closed.append(True)
            original_close()

        image.close = close
        return image

    monkeypatch.setattr(image_loader, "decode_image", decode)
    return closed


def test_image_closed_when_item_times_out_during_decode(make_photo, slow_decode):
    candidate = Candidate.from_path(make_photo("slow.png", RED), 0)
    loader = ImageLoader()
    coordinator = ScanCoordinator(
        loader, MatchEvaluator(ColorDescriptorService()), concurrency=1, item_timeout=0.05
    )

    async def scenario():
        result = await coordinator.scan([candidate], ALICE)
        # Let the worker thread finish the abandoned decode
        await asyncio.sleep(0.4)
        return result

    result = asyncio.run(scenario())

    assert result.stats.processed == 1
    assert result.errors == 1
    assert result.matches == []
    assert slow_decode == [True]
    assert loader.discard_count == 1
    assert (loader.open_count, loader.release_count) == (0, 0)


def test_image_closed_when_loading_task_is_cancelled(make_photo, slow_decode):
    candidate = Candidate.from_path(make_photo("slow.png", RED), 0)
    loader = ImageLoader()

    async def hold_open():
        async with loader.open(candidate):
            pass

    async def scenario():
        task = asyncio.create_task(hold_open())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.4)

    asyncio.run(scenario())

    assert slow_decode == [True]
    assert loader.discard_count == 1


def test_remote_candidate_fetched_over_http():
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, content=png_bytes(), headers={"content-type": "image/png"})

    candidate = Candidate.from_url("https://photos.example/1.png", 0)

    async def scenario():
        client = mock_client(handler)
        loader = ImageLoader(client=client)
        async with loader:
            async with loader.open(candidate) as image:
                size = image.size
        # Injected clients belong to the caller
        assert not client.is_closed
        await client.aclose()
        return size

    assert asyncio.run(scenario()) == (64, 48)
    assert requested == ["https://photos.example/1.png"]


@pytest.mark.parametrize("status", [403, 404, 500])
def test_remote_http_errors_raise_image_load_error(status):
    candidate = Candidate.from_url("https://photos.example/missing.jpg", 0)

    async def scenario():
        async with ImageLoader(client=mock_client(lambda request: httpx.Response(status))) as loader:
            with pytest.raises(ImageLoadError):
                await loader.load(candidate)

    asyncio.run(scenario())


def test_remote_network_error_raises_image_load_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        async with ImageLoader(client=mock_client(handler)) as loader:
            with pytest.raises(ImageLoadError):
                await loader.fetch_bytes(Candidate.from_url("https://down.example/a.jpg", 0))

    asyncio.run(scenario())


def test_remote_candidate_without_url_fails():
    candidate = Candidate(id="web-0", name="Image 1", source="REMOTE", payload="")

    async def scenario():
        with pytest.raises(ImageLoadError):
            await ImageLoader().fetch_bytes(candidate)

    asyncio.run(scenario())


def test_decode_applies_exif_orientation():
    exif = Image.Exif()
    exif[0x0112] = 6  # Rotated 90 CW
    buffer = io.BytesIO()
    solid_image(RED, size=(40, 20)).save(buffer, format="JPEG", exif=exif)

    image = decode_image(buffer.getvalue())

    assert image.size == (20, 40)
    assert image.mode == "RGB"


def test_decode_converts_to_rgb():
    buffer = io.BytesIO()
    Image.new("RGBA", (10, 10), (255, 0, 0, 128)).save(buffer, format="PNG")

    assert decode_image(buffer.getvalue()).mode == "RGB"


def test_supported_extensions():
    assert is_supported_image(Path("IMG_0001.JPG"))
    assert is_supported_image(Path("holiday.heic"))
    assert not is_supported_image(Path("notes.txt"))
