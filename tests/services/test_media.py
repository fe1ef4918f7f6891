import subprocess

from rich.console import Console

from gickinstaller.models import InstallationConfig, InstallPaths
from gickinstaller.services.filesystem import FileSystemService
from gickinstaller.services.media import (
    FDK_AAC_CONFIGURE,
    MediaDependenciesService,
    ffmpeg_status,
    imagemagick_status,
    policy_limits,
    read_total_memory_mb,
)
from gickinstaller.services.renderer import ConfigRenderer

IM7_VERSION = "Version: ImageMagick 7.1.1-29 Q16-HDRI x86_64 https://imagemagick.org\n"
IM6_VERSION = "Version: ImageMagick 6.9.11-60 Q16 x86_64 https://imagemagick.org\n"
FORMATS = (
    "   Format  Module    Mode  Description\n"
    "     JPEG* JPEG      rw-   Joint Photographic Experts Group JFIF format\n"
    "      PNG* PNG       rw+   Portable Network Graphics\n"
    "      SVG  SVG       rw+   Scalable Vector Graphics (RSVG 2.54.7)\n"
    "     WEBP* WEBP      rw+   WebP Image Format\n"
)
FFMPEG_FULL = (
    "ffmpeg version 6.1 Copyright (c) 2000-2023 the FFmpeg developers\n"
    "configuration: --enable-libx264 --enable-libx265 --enable-libvpx --enable-libwebp "
    "--enable-libmp3lame --enable-libopus --enable-libvorbis\n"
    "libavutil      58. 29.100 / 58. 29.100\n"
)


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_imagemagick_status_requires_version_7_and_formats():
    assert imagemagick_status(IM7_VERSION, FORMATS) == (True, [])

    ok, problems = imagemagick_status(IM6_VERSION, FORMATS.replace("rw+   Scalable", "r--   Scalable"))
    assert ok is False
    assert problems == ["version<7", "SVG"]


def test_ffmpeg_status_lists_missing_libraries():
    assert ffmpeg_status(FFMPEG_FULL) == (True, [])

    ok, problems = ffmpeg_status("ffmpeg version 4.4\nconfiguration: --enable-libx264\nlibavutil      56. 70.100\n")
    assert ok is False
    assert "libx265" in problems
    assert "libavutil<58" in problems


def test_policy_limits_scale_with_host():
    small = policy_limits(1024, 1)
    large = policy_limits(16384, 8)

    assert small["memory_limit"] == "256MiB"
    assert small["map_limit"] == "512MiB"
    assert small["thread_limit"] == 2
    assert large["memory_limit"] == "4096MiB"
    assert large["map_limit"] == "8192MiB"
    assert large["thread_limit"] == 16


def test_read_total_memory_falls_back_when_unreadable(tmp_path):
    meminfo = tmp_path / "meminfo"
    meminfo.write_text("MemTotal:        4028440 kB\nMemFree: 1 kB\n", encoding="utf-8")

    assert read_total_memory_mb(str(meminfo)) == 3934
    assert read_total_memory_mb(str(tmp_path / "missing")) == 2048


class FakePackages:
    is_debian_family = True

    def __init__(self, missing_optional=()):
        self.missing_optional = list(missing_optional)
        self.installed = []

    def install(self, packages, optional=False):
        self.installed.append(list(packages))
        return list(self.missing_optional) if optional else []


class AdequateTools:
    def __init__(self):
        self.calls = []

    def __call__(self, cmd, **_kwargs):
        self.calls.append(cmd)
        if cmd[-1] == "format":
            stdout = FORMATS
        elif cmd[0] == "ffmpeg":
            stdout = FFMPEG_FULL
        else:
            stdout = IM7_VERSION
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")


def _config(**overrides):
    values = {
        "domain": "example.com",
        "db_name": "iamgickpro",
        "db_user": "gick",
        "db_password": "apppass1",
        "admin_email": "admin@example.com",
        "admin_password": "adminpass",
        "admin_first_name": "Ada",
        "admin_last_name": "Admin",
    }
    values.update(overrides)
    return InstallationConfig(**values)


def _service(tmp_path, runner, packages, which=lambda name: f"/usr/bin/{name}", build_calls=None):
    console = Console(record=True)
    service = MediaDependenciesService(
        run_cmd=runner,
        package_service=packages,
        download_service=None,
        archive_service=None,
        renderer=ConfigRenderer(),
        filesystem_service=FileSystemService(DummyLogger(), console),
        logger=DummyLogger(),
        console=console,
        which=which,
        cpu_count=lambda: 4,
        meminfo_path=str(tmp_path / "meminfo"),
        policy_dir=str(tmp_path / "ImageMagick-7"),
    )
    if build_calls is not None:
        service.build_from_source = lambda url, name, args, build_dir: build_calls.append((name, args))
    return service


def test_adequate_tools_skip_compilation_and_write_policy(tmp_path):
    build_calls = []
    service = _service(tmp_path, AdequateTools(), FakePackages(), build_calls=build_calls)
    paths = InstallPaths(install_dir=str(tmp_path / "app"), temp_dir=str(tmp_path / "tmp"))

    service.run(_config(), paths)

    assert build_calls == []
    policy = (tmp_path / "ImageMagick-7" / "policy.xml").read_text(encoding="utf-8")
    assert 'name="thread" value="8"' in policy
    assert 'name="memory" value="512MiB"' in policy
    assert not (tmp_path / "tmp" / "media-build").exists()


def test_disabled_media_does_nothing(tmp_path):
    packages = FakePackages()
    service = _service(tmp_path, AdequateTools(), packages)

    service.run(_config(install_imagemagick=False, install_ffmpeg=False), InstallPaths(install_dir=str(tmp_path)))

    assert packages.installed == []


def _not_installed(cmd, **_kwargs):
    return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="")


def _installed_after_build():
    seen = {"ffmpeg": 0}

    def which(name):
        if name != "ffmpeg":
            return None
        seen["ffmpeg"] += 1
        return "/usr/local/bin/ffmpeg" if seen["ffmpeg"] > 1 else None

    return which


def test_fdk_aac_detection_follows_optional_package_result(tmp_path):
    available = _service(tmp_path, _not_installed, FakePackages())
    missing = _service(tmp_path, _not_installed, FakePackages(missing_optional=["libfdk-aac-dev"]))

    assert available.install_build_dependencies() is True
    assert missing.install_build_dependencies() is False


def test_ffmpeg_build_enables_fdk_aac_only_when_available(tmp_path):
    with_fdk = []
    without_fdk = []

    _service(
        tmp_path, _not_installed, FakePackages(), which=_installed_after_build(), build_calls=with_fdk
    ).ensure_ffmpeg(str(tmp_path), with_fdk_aac=True)
    _service(
        tmp_path, _not_installed, FakePackages(), which=_installed_after_build(), build_calls=without_fdk
    ).ensure_ffmpeg(str(tmp_path), with_fdk_aac=False)

    assert with_fdk[0][0] == "ffmpeg"
    assert set(FDK_AAC_CONFIGURE) <= set(with_fdk[0][1])
    assert "--enable-libfdk-aac" not in without_fdk[0][1]
