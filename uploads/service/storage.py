"""
Storage layout and rendition placement.

Permanent files live under fixed category directories named only by a
generated output id:

    original/{outputId}.{ext}
    compressed/{outputId}.{ext}
    thumbnail/{outputId}.{ext}

Uploads wait in queue/{taskId} and pipelines work in tmp/tmp-{taskId}/.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import shutil

from uploads.errors import RelocationFailure

COPY_BUFFER_SIZE = 1024 * 1024
CATEGORIES = ('original', 'compressed', 'thumbnail', 'queue', 'tmp')


@dataclass
class PlacedFiles:
    """Everything one relocation batch moved into permanent storage"""
    output_id: str
    compressed_path: str
    thumbnail_path: str
    original_path: str
    # Absolute paths of the placed renditions
    files: list = field(default_factory=list)
    # Absolute path of the placed original, None until it has moved
    original: Optional[Path] = None

    def as_paths(self):
        """Relative paths stored on the domain object"""
        return {
            'compressed_path': self.compressed_path,
            'thumbnail_path': self.thumbnail_path,
            'original_path': self.original_path,
        }


class StorageRelocator:
    """Moves pipeline output from scratch space into the storage layout"""

    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger

    def log(self, message):
        if self.logger:
            self.logger(message)

    def ensure_directories(self):
        for category in CATEGORIES:
            self.config.directory(category).mkdir(parents=True, exist_ok=True)

    def relative(self, category, name):
        return f'{self.config.directories[category]}/{name}'

    def queue_path(self, task_id):
        return self.config.directory('queue') / task_id

    def scratch_dir(self, task_id):
        return self.config.directory('tmp') / f'tmp-{task_id}'

    def stage_upload(self, task_id, stream):
        """
        Write an upload stream to the queue directory.

        The partly written file is removed if the copy fails.

        Returns:
            Path of the staged file
        """
        self.ensure_directories()
        path = self.queue_path(task_id)
        try:
            with open(path, 'wb') as f:
                shutil.copyfileobj(stream, f, COPY_BUFFER_SIZE)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    def relocate(self, result, output_id, original_extension):
        """
        Move every rendition and then the original into permanent storage.

        The batch counts as placed only when every move succeeded. On a
        failure the files already moved are removed (the original goes back
        where it came from) and RelocationFailure is raised.

        Args:
            result: PipelineResult from the engine
            output_id: freshly generated id used for every file name
            original_extension: detected extension of the upload

        Returns:
            PlacedFiles
        """
        self.ensure_directories()
        placed = PlacedFiles(
            output_id=output_id,
            compressed_path=self.relative('compressed', output_id),
            thumbnail_path=self.relative('thumbnail', output_id),
            original_path=self.relative('original', f'{output_id}.{original_extension}'),
        )
        source_original = Path(result.original)

        try:
            for category, ext, path in result.iter_files():
                target = self.config.directory(category) / f'{output_id}.{ext}'
                self._move(path, target)
                placed.files.append(target)

            target = self.config.directory('original') / f'{output_id}.{original_extension}'
            self._move(source_original, target)
            placed.original = target
        except (OSError, RelocationFailure) as e:
            self.log(f'Relocation failed after {len(placed.files)} files: {e}')
            self.unplace(placed, restore_original_to=source_original)
            if isinstance(e, RelocationFailure):
                raise
            raise RelocationFailure(f'Could not move renditions into storage: {e}')

        self.log(f'Placed {len(placed.files)} renditions and the original as {output_id}')
        return placed

    def _move(self, source, target):
        if target.exists():
            raise RelocationFailure(f'Target already exists: {target}')
        shutil.move(str(source), str(target))

    def unplace(self, placed, restore_original_to=None):
        """
        Undo a relocation: delete placed renditions and move the original
        back to `restore_original_to` (or delete it when no target is given).
        """
        for path in placed.files:
            Path(path).unlink(missing_ok=True)
        placed.files = []

        if placed.original is not None and placed.original.exists():
            if restore_original_to is not None:
                Path(restore_original_to).parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(placed.original), str(restore_original_to))
                self.log(f'Original restored to {restore_original_to}')
            else:
                placed.original.unlink()
        placed.original = None

    def remove_scratch(self, task_id):
        scratch = self.scratch_dir(task_id)
        if scratch.exists():
            shutil.rmtree(scratch, ignore_errors=True)

    def remove_queued(self, task_id):
        self.queue_path(task_id).unlink(missing_ok=True)

    def rendition_files(self, relative_path):
        """Existing files for an extensionless rendition path like 'compressed/abc'"""
        if not relative_path:
            return []
        base = self.config.storage_dir / relative_path
        if not base.parent.exists():
            return []
        return sorted(base.parent.glob(f'{base.name}.*'))

    def delete_item_files(self, compressed_path, thumbnail_path, original_path):
        """
        Delete every file of a rendition set plus its original.

        Returns:
            int: number of files removed
        """
        paths = self.rendition_files(compressed_path) + self.rendition_files(thumbnail_path)
        if original_path:
            paths.append(self.config.storage_dir / original_path)

        removed = 0
        for path in paths:
            if path.exists():
                path.unlink()
                removed += 1
        return removed
