from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse
import os
import shutil
import tarfile
import time

import click
import requests

from provisioning import sez

# Timeout for HEAD requests and for establishing connections (seconds)
CONNECT_TIMEOUT_S = 30

# requests applies this per socket read, not to the transfer as a whole.
READ_TIMEOUT_S = 60

DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# These are HTTP error codes for (at least potentially) transient issues.
TRANSIENT_HTTP_CODES = (500, 502, 503, 504)


class FetchError(Exception):
    """Raised when a download fails; any partial file is left behind for resumption."""

    def __init__(self, message: str, code: str = "fetch_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class DownloadSession:
    url: str
    local_path: Path
    bytes_already_on_disk: int
    total_size: int | None
    bytes_transferred: int = 0


class NoProgress:
    """Stands in for a progress bar when the total size is unknown."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def update(self, n_steps: int) -> None:
        pass


def filename_from_url(url: str) -> str:
    name = os.path.basename(urlparse(url).path)
    if not name:
        raise FetchError(f"Cannot determine a file name from {url}", code="bad_url")
    return name


def content_length(response) -> int | None:
    value = response.headers.get("Content-Length")
    if value is None or not value.strip().isdigit():
        return None
    return int(value)


def query_total_size(http, url: str) -> int | None:
    """Returns None when the size is unknown, leaving the GET to establish it.

    Some servers, and signed redirect targets, refuse HEAD outright.
    """
    response = http.head(url, allow_redirects=True, timeout=CONNECT_TIMEOUT_S)
    if response.status_code >= 400:
        return None
    return content_length(response)


def fetch(
    url: str,
    dest_dir: Path,
    *,
    session=None,
    progressbar=click.progressbar,
    retry_delay_s: float = 6.0,
    first_attempt=True,
) -> DownloadSession:
    """Download `url` into `dest_dir`, resuming from a partial file if one exists.

    The destination file name is the last path segment of the URL. A file of that
    name already in `dest_dir` is assumed to be the prefix of the remote file, and
    only the remaining bytes are requested (via a Range header) and appended.

    Raises FetchError on failure, leaving whatever was written in place so that
    a later call can pick up where this one stopped.
    """

    def say(msg: str, err=False):
        sez(msg, ctx="(fetch) ", err=err)

    http = session if session is not None else requests.Session()
    local_path = Path(dest_dir) / filename_from_url(url)

    def report_potentially_transient_problem_and_retry(e: Exception, code: str):
        if not first_attempt:
            raise FetchError(f"Failed to download {url}: {e}", code=code) from e

        say(f"Problem when downloading {url}: {e}", err=True)
        say("Hopefully this is a temporary issue and will resolve itself.", err=True)
        say("I will wait for a few seconds then re-try, once.", err=True)
        time.sleep(retry_delay_s)
        return fetch(
            url,
            dest_dir,
            session=http,
            progressbar=progressbar,
            retry_delay_s=retry_delay_s,
            first_attempt=False,
        )

    try:
        return stream_to_disk(http, url, local_path, progressbar, say)
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        if status in TRANSIENT_HTTP_CODES:
            return report_potentially_transient_problem_and_retry(e, "http_error")
        raise FetchError(f"HTTP error downloading {url}: {e}", code="http_error") from e
    except (
        requests.ConnectionError,
        requests.Timeout,
        requests.exceptions.ChunkedEncodingError,
    ) as e:
        return report_potentially_transient_problem_and_retry(e, "network_error")
    except requests.RequestException as e:
        raise FetchError(f"Network error downloading {url}: {e}", code="network_error") from e
    except OSError as e:
        raise FetchError(f"Unable to write {local_path}: {e}", code="io_error") from e


def stream_to_disk(http, url: str, local_path: Path, progressbar, say) -> DownloadSession:
    total = query_total_size(http, url)

    on_disk = local_path.stat().st_size if local_path.is_file() else 0
    if total is not None and on_disk > total:
        say(f"{local_path.name} is larger than the remote file; starting over.")
        local_path.unlink()
        on_disk = 0

    dl = DownloadSession(
        url=url, local_path=local_path, bytes_already_on_disk=on_disk, total_size=total
    )
    if on_disk > 0 and on_disk == total:
        say(f"{local_path.name} was already downloaded.")
        return dl

    headers = {}
    if on_disk > 0:
        headers["Range"] = f"bytes={on_disk}-"
        say(f"Resuming download of {url} at byte {on_disk}...")
    else:
        say(f"Downloading {url}...")

    with http.get(
        url, headers=headers, stream=True, timeout=(CONNECT_TIMEOUT_S, READ_TIMEOUT_S)
    ) as response:
        if on_disk > 0 and response.status_code == 416 and total is None:
            # Nothing left to send: the partial file was in fact complete.
            return dl
        response.raise_for_status()

        mode = "ab" if on_disk > 0 else "wb"
        if on_disk > 0 and response.status_code != 206:
            say("Server ignored our byte range request; restarting the download.")
            dl.bytes_already_on_disk = 0
            mode = "wb"

        if dl.total_size is None:
            remaining = content_length(response)
            if remaining is not None:
                dl.total_size = dl.bytes_already_on_disk + remaining

        local_path.parent.mkdir(parents=True, exist_ok=True)
        if dl.total_size is not None:
            bar = progressbar(length=dl.total_size, label=local_path.name)
        else:
            bar = NoProgress()

        with open(local_path, mode) as f, bar:
            # The bar covers the whole file, so resumed downloads show overall completion.
            bar.update(dl.bytes_already_on_disk)
            for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                if not chunk:
                    continue
                f.write(chunk)
                dl.bytes_transferred += len(chunk)
                bar.update(len(chunk))
            f.flush()
            os.fsync(f.fileno())

    return dl


def extract_tarball(tarball_path: Path, initial_target_dir: Path, ctx: str) -> Path:
    """
    Extracts the given tarball into (or within) the target directory.

    If the tarball unpacks a single directory with the same name as the tarball
    (minus the suffix), or as the target directory, the contents of that
    directory will be moved up a level, and the empty directory will be removed.

    Returns the path to the directory that contains the unpacked contents.
    """

    def say(msg: str):
        sez(msg, ctx)

    def select_tarball_suffix(filename: str) -> str:
        for suffix in (".tar.gz", ".tgz", ".tar.xz", ".tar.bz2", ".tbz"):
            if filename.endswith(suffix):
                return suffix
        raise ValueError(f"Unknown tarball suffix for file: {filename}")

    tarball_basename = tarball_path.name.removesuffix(select_tarball_suffix(tarball_path.name))

    if initial_target_dir.is_dir() and any(initial_target_dir.iterdir()):
        # If the target directory already existed, and is not empty,
        # we'll unpack the tarball into a new directory inside it.
        final_target_dir = initial_target_dir / tarball_basename
        say(f"Extracting to subdirectory {final_target_dir}...")
    else:
        final_target_dir = initial_target_dir
        say(f"Extracting to {initial_target_dir}...")

    final_target_dir.mkdir(parents=True, exist_ok=True)

    with tarfile.open(str(tarball_path), "r:*") as tar:
        tar.extractall(path=final_target_dir, filter="tar")

    # For example, we have foo-bar.tar.gz, and unpack it into blah/;
    #   then if we find blah/foo-bar/, we trim out the foo-bar part.
    final_dir_contents = list(final_target_dir.iterdir())
    replicated_tarball_name = final_dir_contents == [final_target_dir / tarball_basename]
    # Likewise, if we find blah/blah/, we trim out the middle blah part.
    replicated_target_basename = final_dir_contents == [final_target_dir / final_target_dir.name]
    if (replicated_tarball_name or replicated_target_basename) and final_dir_contents[0].is_dir():
        extracted_path = final_dir_contents[0]
        # Move under a temporary name first, in case the wrapper directory
        # contains an entry with its own name.
        staging = final_target_dir.with_name(final_target_dir.name + ".extracting")
        extracted_path.rename(staging)
        for item in staging.iterdir():
            shutil.move(str(item), str(final_target_dir))
        staging.rmdir()

    say(f"Extraction of {tarball_path.name} completed successfully!")
    return final_target_dir
