"""ImageMagick and FFmpeg: detection, source builds and resource policy."""

import json
import os
import re
from typing import Callable, Dict, List, Optional, Tuple

from gickinstaller.constants import COMPILE_TIMEOUT, IMAGEMAGICK_POLICY_DIR
from gickinstaller.errors import InstallerError
from gickinstaller.models import InstallationConfig, InstallPaths

MEDIA_BUILD_PACKAGES = {
    "apt": [
        "yasm",
        "nasm",
        "libx264-dev",
        "libx265-dev",
        "libvpx-dev",
        "libmp3lame-dev",
        "libopus-dev",
        "libvorbis-dev",
        "libtheora-dev",
        "libwebp-dev",
        "libjpeg-dev",
        "libpng-dev",
        "libtiff-dev",
        "libgif-dev",
        "zlib1g-dev",
        "libbz2-dev",
        "libfreetype6-dev",
        "libfontconfig1-dev",
        "libxml2-dev",
        "libgomp1",
        "librsvg2-dev",
        "libcairo2-dev",
        "libpango1.0-dev",
    ],
    "rpm": [
        "yasm",
        "nasm",
        "libwebp-devel",
        "libjpeg-turbo-devel",
        "libpng-devel",
        "libtiff-devel",
        "giflib-devel",
        "zlib-devel",
        "bzip2-devel",
        "freetype-devel",
        "fontconfig-devel",
        "libxml2-devel",
        "librsvg2-devel",
        "cairo-devel",
        "pango-devel",
    ],
}
# Not in every distribution's default repositories.
OPTIONAL_MEDIA_PACKAGES = {
    "apt": ["libfdk-aac-dev"],
    "rpm": ["x264-devel", "x265-devel", "libvpx-devel", "lame-devel", "opus-devel", "libvorbis-devel", "libtheora-devel"],
}

IMAGEMAGICK_RELEASE_API = "https://api.github.com/repos/ImageMagick/ImageMagick/releases/latest"
IMAGEMAGICK_SOURCE_URL = "https://github.com/ImageMagick/ImageMagick/archive/refs/tags/{tag}.tar.gz"
FFMPEG_SOURCE_URL = "https://ffmpeg.org/releases/ffmpeg-snapshot.tar.bz2"

REQUIRED_IMAGE_FORMATS = ("SVG", "WEBP", "JPEG", "PNG")
REQUIRED_FFMPEG_LIBS = ("libx264", "libx265", "libvpx", "libwebp", "libmp3lame", "libopus", "libvorbis")
MIN_IMAGEMAGICK_MAJOR = 7
MIN_LIBAVUTIL_MAJOR = 58

IMAGEMAGICK_CONFIGURE = [
    "--prefix=/usr/local",
    "--enable-shared",
    "--enable-static",
    "--with-modules",
    "--with-quantum-depth=16",
    "--without-x",
    "--with-jpeg",
    "--with-png",
    "--with-tiff",
    "--with-webp",
    "--with-freetype",
    "--with-fontconfig",
    "--with-xml",
    "--with-rsvg",
    "--with-cairo",
    "--with-pango",
    "--enable-hdri",
]
FFMPEG_CONFIGURE = [
    "--prefix=/usr/local",
    "--enable-shared",
    "--enable-static",
    "--enable-gpl",
    "--enable-version3",
    "--disable-debug",
    "--disable-doc",
    "--enable-libx264",
    "--enable-libx265",
    "--enable-libvpx",
    "--enable-libmp3lame",
    "--enable-libopus",
    "--enable-libvorbis",
    "--enable-libtheora",
    "--enable-libwebp",
    "--enable-pic",
    "--extra-libs=-lpthread",
    "--extra-libs=-lm",
]
FDK_AAC_CONFIGURE = ["--enable-nonfree", "--enable-libfdk-aac"]


def imagemagick_status(version_output: str, formats_output: str) -> Tuple[bool, List[str]]:
    """Return whether the installed ImageMagick is adequate and what it lacks."""
    problems = []
    match = re.search(r"ImageMagick (\d+)\.", version_output or "")
    if not match or int(match.group(1)) < MIN_IMAGEMAGICK_MAJOR:
        problems.append(f"version<{MIN_IMAGEMAGICK_MAJOR}")
    for fmt in REQUIRED_IMAGE_FORMATS:
        if not re.search(rf"^\s*{fmt}\*?\s+\S+\s+rw", formats_output or "", re.MULTILINE):
            problems.append(fmt)
    return not problems, problems


def ffmpeg_status(version_output: str) -> Tuple[bool, List[str]]:
    problems = [lib for lib in REQUIRED_FFMPEG_LIBS if lib not in (version_output or "")]
    match = re.search(r"^libavutil\s+(\d+)\.", version_output or "", re.MULTILINE)
    if not match or int(match.group(1)) < MIN_LIBAVUTIL_MAJOR:
        problems.append(f"libavutil<{MIN_LIBAVUTIL_MAJOR}")
    return not problems, problems


def read_total_memory_mb(meminfo_path: str = "/proc/meminfo") -> int:
    try:
        with open(meminfo_path, "r", encoding="utf-8") as file_obj:
            for line in file_obj:
                if line.startswith("MemTotal:"):
                    return int(line.split()[1]) // 1024
    except (OSError, ValueError, IndexError):
        pass
    return 2048


def policy_limits(memory_mb: int, cpu_count: int) -> Dict[str, object]:
    return {
        "memory_mb": memory_mb,
        "cpu_count": cpu_count,
        "memory_limit": f"{max(memory_mb // 4, 256)}MiB",
        "map_limit": f"{max(memory_mb // 2, 512)}MiB",
        "area_limit": "1GB",
        "disk_limit": "2GiB",
        "thread_limit": max(cpu_count * 2, 1),
    }


class MediaDependenciesService:
    """Makes sure ImageMagick 7 and a full-featured FFmpeg are available."""

    def __init__(
        self,
        run_cmd,
        package_service,
        download_service,
        archive_service,
        renderer,
        filesystem_service,
        logger,
        console,
        which,
        cpu_count: Callable[[], Optional[int]] = os.cpu_count,
        meminfo_path: str = "/proc/meminfo",
        policy_dir: str = IMAGEMAGICK_POLICY_DIR,
    ):
        self.run_cmd = run_cmd
        self.packages = package_service
        self.download_service = download_service
        self.archive_service = archive_service
        self.renderer = renderer
        self.filesystem_service = filesystem_service
        self.logger = logger
        self.console = console
        self.which = which
        self.cpu_count = cpu_count
        self.meminfo_path = meminfo_path
        self.policy_dir = policy_dir

    def run(self, config: InstallationConfig, paths: InstallPaths):
        if not (config.install_imagemagick or config.install_ffmpeg):
            self.console.print("[dim]Media compilation disabled; nothing to do.[/dim]")
            return

        build_dir = paths.media_build_dir
        self.filesystem_service.ensure_dir(build_dir)
        try:
            fdk_available = self.install_build_dependencies()
            if config.install_imagemagick:
                self.ensure_imagemagick(build_dir)
                self.write_policy()
            if config.install_ffmpeg:
                self.ensure_ffmpeg(build_dir, with_fdk_aac=fdk_available)
        finally:
            self.filesystem_service.cleanup_dir(build_dir)

    def install_build_dependencies(self) -> bool:
        """Install build libraries; return whether the optional AAC encoder is present."""
        family = "apt" if self.packages.is_debian_family else "rpm"
        self.packages.install(MEDIA_BUILD_PACKAGES[family])
        missing = self.packages.install(OPTIONAL_MEDIA_PACKAGES[family], optional=True)
        return family == "apt" and "libfdk-aac-dev" not in missing

    def _jobs(self) -> int:
        return max(self.cpu_count() or 1, 1)

    def _output(self, cmd: List[str]) -> str:
        result = self.run_cmd(cmd, check=False, capture_output=True)
        return (result.stdout or "") + (result.stderr or "")

    def imagemagick_binary(self) -> Optional[str]:
        for name in ("magick", "convert"):
            if self.which(name):
                return name
        return None

    def imagemagick_adequate(self) -> bool:
        binary = self.imagemagick_binary()
        if binary is None:
            return False
        ok, problems = imagemagick_status(
            self._output([binary, "-version"]),
            self._output([binary, "-list", "format"]),
        )
        if not ok:
            self.logger.info("Installed ImageMagick is missing: %s", " ".join(problems))
        return ok

    def ffmpeg_adequate(self) -> bool:
        if not self.which("ffmpeg"):
            return False
        ok, problems = ffmpeg_status(self._output(["ffmpeg", "-version"]))
        if not ok:
            self.logger.info("Installed FFmpeg is missing: %s", " ".join(problems))
        return ok

    def latest_imagemagick_tag(self) -> str:
        payload = self.download_service.fetch_text(IMAGEMAGICK_RELEASE_API, "ImageMagick release information")
        try:
            return json.loads(payload)["tag_name"]
        except (ValueError, KeyError, TypeError) as exc:
            raise InstallerError("Could not determine the latest ImageMagick release.") from exc

    def ensure_imagemagick(self, build_dir: str):
        if self.imagemagick_adequate():
            self.console.print("[green]ImageMagick already meets requirements; skipping compilation.[/green]")
            return

        tag = self.latest_imagemagick_tag()
        self.console.print(f"[blue]Compiling ImageMagick {tag} (this can take a while)...[/blue]")
        self.build_from_source(IMAGEMAGICK_SOURCE_URL.format(tag=tag), "imagemagick", IMAGEMAGICK_CONFIGURE, build_dir)
        if not self.imagemagick_adequate():
            raise InstallerError("ImageMagick was compiled but does not report the required formats.")

    def ensure_ffmpeg(self, build_dir: str, with_fdk_aac: bool = False):
        if self.ffmpeg_adequate():
            self.console.print("[green]FFmpeg already meets requirements; skipping compilation.[/green]")
            return

        args = list(FFMPEG_CONFIGURE)
        if with_fdk_aac:
            args.extend(FDK_AAC_CONFIGURE)
        self.console.print("[blue]Compiling FFmpeg (this can take 10-15 minutes)...[/blue]")
        self.build_from_source(FFMPEG_SOURCE_URL, "ffmpeg", args, build_dir)
        if not self.which("ffmpeg"):
            raise InstallerError("FFmpeg installation verification failed.")

    def build_from_source(self, url: str, name: str, configure_args: List[str], build_dir: str):
        tarball = os.path.join(build_dir, f"{name}-source.tar")
        source_root = os.path.join(build_dir, name)
        self.download_service.download_file(url, tarball, f"{name} source")
        self.archive_service.safe_extract_tar(tarball, source_root)

        entries = [entry for entry in os.listdir(source_root) if os.path.isdir(os.path.join(source_root, entry))]
        if len(entries) != 1:
            raise InstallerError(f"Unexpected layout in the {name} source archive.")
        source_dir = os.path.join(source_root, entries[0])

        self.run_cmd(["./configure", *configure_args], cwd=source_dir, capture_output=True, timeout=COMPILE_TIMEOUT)
        self.run_cmd(["make", f"-j{self._jobs()}"], cwd=source_dir, capture_output=True, timeout=COMPILE_TIMEOUT)
        self.run_cmd(["make", "install"], cwd=source_dir, capture_output=True, timeout=COMPILE_TIMEOUT)
        self.run_cmd(["ldconfig"], capture_output=True)
        self.logger.info("%s built and installed from %s", name, url)

    def write_policy(self) -> str:
        limits = policy_limits(read_total_memory_mb(self.meminfo_path), self._jobs())
        text = self.renderer.render_template("imagemagick-policy.xml.j2", **limits)
        path = os.path.join(self.policy_dir, "policy.xml")
        self.filesystem_service.ensure_dir(self.policy_dir)
        self.filesystem_service.write_file(path, text)
        self.logger.info("ImageMagick policy written for %s MiB and %s CPU(s)", limits["memory_mb"], limits["cpu_count"])
        return path
