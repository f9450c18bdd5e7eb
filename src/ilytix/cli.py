from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from .config import Settings
from .dedup.cluster import Strategy
from .dedup.hash import Method
from .dedup.index import IndexKind
from .dedup.model import DedupResult, build_corpus, deduplicate_images
from .errors import IlytixError, MissingOutputTarget
from .loader import load_files
from .logging import get_logger
from .reporting import ConsoleReporter, Reporter
from .retrieval import Kind, RetrievalEngine
from .sanitize import check_integrity, stage_integrity
from .staging import make_folders, save

app = typer.Typer(help="ilytix: image dataset curation toolkit", no_args_is_help=True)

SAVEOUT_CURATED = "Curated"
SAVEOUT_DUPLICATED = "Duplicated"
SAVEOUT_DEPRECATED = "Deprecated Or Unsupported"

_DEFAULTS = Settings()
_OUTPUT_HINT = "Use `-o <PATH>` to set the save location"


@contextmanager
def _fatal_errors(reporter: Reporter) -> Iterator[None]:
    """Turn ilytix errors into a reported failure and a non-zero exit code."""
    logger = get_logger(__name__)
    try:
        yield
    except MissingOutputTarget as exc:
        reporter.fail("Results save at", "None", str(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    except IlytixError as exc:
        logger.error(str(exc))
        reporter.fail("Error", type(exc).__name__, str(exc))
        raise typer.Exit(code=exc.exit_code) from exc


def _load(reporter: Reporter, source: Path, recursive: bool) -> List[Path]:
    paths = load_files(source, recursive=recursive, include_hidden=_DEFAULTS.include_hidden)
    reporter.success("Source", str(source.resolve()), "File" if source.is_file() else "Folder")
    reporter.success("Recursively", str(recursive))
    return paths


def _settings(thresh: float, workers: int, **kwargs) -> Settings:
    settings = Settings(thresh=thresh, workers=workers, **kwargs)
    try:
        settings.validate()
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return settings


def _report_deprecated(reporter: Reporter, paths: List[Path]) -> None:
    if not paths:
        return
    reporter.warn("Unsupported Or Deprecated Files")
    for path in paths:
        reporter.warn("", str(path.resolve()))


def _stage_dedup(result: DedupResult, output: Path, move: bool, reporter: Reporter) -> Path:
    saveout = make_folders(output)
    curated_dir = saveout / SAVEOUT_CURATED
    duplicated_dir = saveout / SAVEOUT_DUPLICATED
    curated_dir.mkdir()
    duplicated_dir.mkdir()

    curated = set(result.resolution.curated)
    duplicates = set(result.resolution.duplicates)
    with reporter.progress(len(curated) + len(duplicates), "Saving(Move)" if move else "Saving(Copy)") as bar:
        for item_id, path in enumerate(result.corpus.paths):
            if item_id in duplicates:
                save(path, duplicated_dir, move)
            elif item_id in curated:
                save(path, curated_dir, move)
            else:
                continue
            bar.update(1)
    return saveout


@app.command()
def dedup(
    source: Path = typer.Option(..., "--input", "-i", help="Image file or folder to deduplicate"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Folder for Curated/ and Duplicated/ results"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into sub-folders"),
    mv: bool = typer.Option(False, "--mv", help="Move files instead of copying them"),
    method: Method = typer.Option(_DEFAULTS.method, "--method", "-m", help="Fingerprint method"),
    thresh: float = typer.Option(_DEFAULTS.thresh, "--thresh", help="Maximum Hamming distance between duplicates; the smaller, the lower the tolerance"),
    strategy: Strategy = typer.Option(_DEFAULTS.strategy, "--strategy", help="Duplicate resolution strategy"),
    index: IndexKind = typer.Option(_DEFAULTS.index_kind, "--index", help="Similarity index backend (index strategy only)"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers", "-w", help="Hashing threads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List unsupported or deprecated files"),
) -> None:
    """
    Split images into curated representatives and near-duplicates.

    In every group of perceptually similar images the largest file is kept
    as curated; the others are duplicates.
    """
    logger = get_logger(__name__)
    reporter = ConsoleReporter()
    settings = _settings(thresh, workers, method=method, strategy=strategy, index_kind=index)

    with _fatal_errors(reporter):
        paths = _load(reporter, source, recursive)
        logger.info(f"Deduplicating {len(paths)} files (thresh={settings.thresh}, strategy={settings.strategy.value})")
        result = deduplicate_images(
            paths,
            thresh=settings.thresh,
            strategy=settings.strategy,
            index_kind=settings.index_kind,
            method=settings.method,
            workers=settings.workers,
            reporter=reporter,
            connectivity=settings.nsw_connectivity,
            ef_search=settings.nsw_ef_search,
        )

        n_duplicates = len(result.resolution.duplicates)
        n_deprecated = len(result.corpus.deprecated)
        reporter.success("Found")
        reporter.success("", SAVEOUT_DUPLICATED, f"x{n_duplicates}")
        reporter.success("", SAVEOUT_CURATED, f"x{len(result.resolution.curated)}")
        reporter.success("", SAVEOUT_DEPRECATED, f"x{n_deprecated}")
        if verbose:
            _report_deprecated(reporter, result.deprecated_paths)

        if n_duplicates == 0:
            reporter.note(
                f"\n🎉 All the images seem non-duplicate under the current threshold: {settings.thresh}, "
                "but you can still deduplicate by adjusting the threshold."
            )
            if n_deprecated:
                reporter.note(f"⚠ But, still, there are {n_deprecated} files that are unsupported or deprecated.")
            return

        if output is None:
            raise MissingOutputTarget(_OUTPUT_HINT)

        saveout = _stage_dedup(result, output, mv, reporter)
        reporter.success("Results saved at", str(saveout.resolve()))


@app.command()
def retrieve(
    source: Path = typer.Option(..., "--input", "-i", help="Image file or folder to search in"),
    query: Path = typer.Option(..., "--query", help="Query image"),
    kind: Kind = typer.Option(Kind.IMAGE, "--kind", "-k", help="Query kind"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Folder for matched images"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into sub-folders"),
    mv: bool = typer.Option(False, "--mv", help="Move files instead of copying them"),
    method: Method = typer.Option(_DEFAULTS.method, "--method", "-m", help="Fingerprint method"),
    thresh: float = typer.Option(_DEFAULTS.thresh, "--thresh", help="Maximum Hamming distance to the query; the smaller, the lower the tolerance"),
    index: IndexKind = typer.Option(_DEFAULTS.index_kind, "--index", help="Similarity index backend"),
    workers: int = typer.Option(_DEFAULTS.workers, "--workers", "-w", help="Hashing threads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="List matched files"),
) -> None:
    """
    Find the images in a collection that look like the query image.
    """
    logger = get_logger(__name__)
    reporter = ConsoleReporter()
    settings = _settings(thresh, workers, method=method, index_kind=index)

    with _fatal_errors(reporter):
        paths = _load(reporter, source, recursive)
        corpus = build_corpus(paths, method=settings.method, workers=settings.workers, reporter=reporter)
        engine = RetrievalEngine(
            thresh=settings.thresh,
            index_kind=settings.index_kind,
            method=settings.method,
            reporter=reporter,
            connectivity=settings.nsw_connectivity,
            ef_search=settings.nsw_ef_search,
        )
        engine.build(corpus.fingerprints)
        logger.info(f"Query kind: {kind.value}")
        matches = engine.search(engine.fingerprint_query(query))
        logger.info(f"Retrieved {len(matches)} of {len(corpus.fingerprints)} images")

        reporter.success("Matched", f"x{len(matches)}")
        reporter.success("Unmatched", f"x{len(corpus.fingerprints) - len(matches)}")
        if not matches:
            reporter.note(f"No image retrieved under the current threshold: {settings.thresh}")
            return
        if verbose:
            for match in matches:
                reporter.success("", str(corpus.path_of(match.id).resolve()), f"distance {match.distance}")

        if output is None:
            raise MissingOutputTarget(_OUTPUT_HINT)

        saveout = make_folders(output)
        with reporter.progress(len(matches), "Saving[Move]" if mv else "Saving[Copy]") as bar:
            for match in matches:
                save(corpus.path_of(match.id), saveout, mv)
                bar.update(1)
        reporter.success("Results saved at", str(saveout.resolve()))


@app.command()
def check(
    source: Path = typer.Option(..., "--input", "-i", help="Image file or folder to check"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Folder for the classified files"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Descend into sub-folders"),
    mv: bool = typer.Option(False, "--mv", help="Move files instead of copying them"),
) -> None:
    """
    Check image integrity: intact, wrong file extension, or undecodable.
    """
    reporter = ConsoleReporter()

    with _fatal_errors(reporter):
        paths = _load(reporter, source, recursive)
        report = check_integrity(paths, reporter=reporter)
        if report.is_ok():
            reporter.note("\n🎉 All the images appear to be intact and accurate.")
            return
        if output is None:
            raise MissingOutputTarget(_OUTPUT_HINT)
        stage_integrity(report, output, move=mv, reporter=reporter)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
