"""
storage.py – Journal entry storage and retrieval.

This module contains JournalStore, the single class responsible for all
file I/O related to journal entries:

  - Naming new entries and refusing names that are already taken.
  - Listing entries by scanning the store directory (no index is kept).
  - Encrypting entry text to its backing file and decrypting it back.
  - Deleting entries, changing an entry's password and migrating an entry
    to the store's current cipher format.

Each entry lives in exactly one file, <directory>/<name>.journal, and the
existence of that file is the only record that the entry exists.

A wrong password on read is not an exception: read() returns the
BAD_PASSWORD value so that the UI layer can ask again.  Password input
problems (NoPassword, PasswordTooLong) and naming problems (NameConflict,
EntryValidationError) are raised, as are filesystem errors.
"""

import logging
import os
from typing import List, NamedTuple, Optional, Union

from config import APP_NAME, JOURNAL_DIR, JOURNAL_SUFFIX, KDF_ITERATIONS
from crypto import DecryptionError, LegacyCipher, cipher_for, sniff_cipher
from keys import validate_password

logger = logging.getLogger(APP_NAME)


class JournalError(Exception):
    """Base class for entry lifecycle errors."""


class NameConflict(JournalError):
    """Raised by JournalStore.create() when the name is already in use."""

    def __init__(self, name: str) -> None:
        super().__init__(f"An entry named {name!r} already exists.")
        self.name: str = name


class EntryNotFound(JournalError, FileNotFoundError):
    """Raised when an operation needs an entry file that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No entry named {name!r}.")
        self.name: str = name


class EntryValidationError(ValueError):
    """
    Raised when an entry name cannot be used as a file name.

    Attributes
    ----------
    field : str or None
        The name of the offending field, so the UI can focus it.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field: Optional[str] = field


class ReadResult(NamedTuple):
    """Outcome of JournalStore.read(): the text, or a bad-password marker."""

    ok: bool
    plaintext: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


# Returned instead of raising when a password does not open an entry.
BAD_PASSWORD = ReadResult(ok=False)


class JournalEntry:
    """
    A named entry bound to its backing file.

    Creating a JournalEntry does not touch the disk; the file appears on the
    first write.
    """

    def __init__(self, name: str, path: str) -> None:
        self.name = name
        self.path = path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def __eq__(self, other) -> bool:
        if not isinstance(other, JournalEntry):
            return NotImplemented
        return self.name == other.name and self.path == other.path

    def __hash__(self) -> int:
        return hash((self.name, self.path))

    def __repr__(self) -> str:
        return f"JournalEntry({self.name!r})"

    def __str__(self) -> str:
        return self.name


EntryRef = Union[JournalEntry, str]


class JournalStore:
    """
    Manages the encrypted entry files in one directory.

    Parameters
    ----------
    directory : str
        Store location; created if it does not exist.
    cipher : LegacyCipher or FernetCipher, optional
        Format used for writes.  Reads detect the format of each file.
        Defaults to the legacy format.
    suffix : str
        Extension of the backing files.
    kdf_iterations : int
        Default PBKDF2 work factor handed to format detection.
    """

    def __init__(
        self,
        directory: str = JOURNAL_DIR,
        cipher=None,
        suffix: str = JOURNAL_SUFFIX,
        kdf_iterations: int = KDF_ITERATIONS,
    ) -> None:
        self.directory: str = os.path.abspath(directory)
        self.cipher = cipher or LegacyCipher()
        self.suffix: str = suffix
        self.kdf_iterations: int = kdf_iterations

        if not os.path.isdir(self.directory):
            os.makedirs(self.directory, exist_ok=True)
            logger.info("Created journal entry directory %s", self.directory)

    @classmethod
    def from_config(cls, config) -> "JournalStore":
        """Build a store from an AppConfig instance."""
        iterations = int(config.get("kdf_iterations", KDF_ITERATIONS))
        cipher = cipher_for(config.get("cipher", LegacyCipher.name), iterations)
        return cls(config.journal_dir, cipher=cipher, kdf_iterations=iterations)

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    def _validate_name(self, name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            raise EntryValidationError("Entry name cannot be empty.", field="name")
        if name in (".", "..") or "\0" in name:
            raise EntryValidationError(f"Invalid entry name: {name!r}", field="name")
        if "/" in name or "\\" in name or (os.altsep and os.altsep in name):
            raise EntryValidationError(
                "Entry name cannot contain path separators.", field="name"
            )
        return name

    def _path_for(self, name: str) -> str:
        return os.path.join(self.directory, name + self.suffix)

    def _entry(self, entry: EntryRef) -> JournalEntry:
        """Resolve a name or JournalEntry to an entry of this store."""
        name = entry.name if isinstance(entry, JournalEntry) else entry
        name = self._validate_name(name)
        return JournalEntry(name, self._path_for(name))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, name: str, replace: bool = False) -> JournalEntry:
        """
        Name a new entry.

        Raises NameConflict if an entry with *name* already exists, unless
        *replace* is true, in which case the next write() overwrites it.
        """
        entry = self._entry(name)
        if entry.exists() and not replace:
            raise NameConflict(entry.name)
        logger.info("Registered entry %s", entry.name)
        return entry

    def list(self) -> List[JournalEntry]:
        """
        Return one entry per backing file, in directory order.

        Files whose stem is not a usable entry name (e.g. "   .journal")
        are skipped, so every listed entry can be read and deleted.
        """
        entries = []
        with os.scandir(self.directory) as it:
            for item in it:
                if not item.name.endswith(self.suffix) or not item.is_file():
                    continue
                name = item.name[:-len(self.suffix)]
                try:
                    self._validate_name(name)
                except EntryValidationError:
                    logger.warning("Skipping unusable entry file %r", item.name)
                    continue
                entries.append(JournalEntry(name, item.path))
        return entries

    def get(self, name: str) -> JournalEntry:
        """Return the existing entry called *name*, or raise EntryNotFound."""
        entry = self._entry(name)
        if not entry.exists():
            raise EntryNotFound(entry.name)
        return entry

    def exists(self, name: str) -> bool:
        try:
            return self._entry(name).exists()
        except EntryValidationError:
            return False

    def __contains__(self, name) -> bool:
        if isinstance(name, JournalEntry):
            name = name.name
        return self.exists(name)

    def write(self, entry: EntryRef, plaintext: str, password: Optional[str]) -> bool:
        """
        Encrypt *plaintext* under *password* and overwrite the entry's file.

        The password is checked before anything is written, so NoPassword
        and PasswordTooLong leave the existing file untouched.  The data is
        written to a temporary file that then replaces the backing file;
        there is no fsync, so a crash can still lose the latest write.
        """
        entry = self._entry(entry)
        validate_password(password)
        blob = self.cipher.encrypt(plaintext, password)

        tmp = entry.path + ".tmp"
        try:
            with open(tmp, "wb") as fh:
                fh.write(blob)
            os.replace(tmp, entry.path)
        except OSError:
            logger.exception("Failed to write entry %s", entry.name)
            self._silent_remove(tmp)
            raise

        logger.info("Saved entry %s (%s format)", entry.name, self.cipher.name)
        return True

    def read(self, entry: EntryRef, password: Optional[str]) -> ReadResult:
        """
        Decrypt an entry.

        Returns ReadResult(ok=True, plaintext=...) on success and
        BAD_PASSWORD when the password does not open the entry.
        Raises NoPassword / PasswordTooLong for unusable input and
        EntryNotFound when the entry has no backing file.
        """
        entry = self._entry(entry)
        validate_password(password)

        try:
            with open(entry.path, "rb") as fh:
                blob = fh.read()
        except FileNotFoundError:
            raise EntryNotFound(entry.name) from None

        cipher = sniff_cipher(blob, self.kdf_iterations)
        try:
            plaintext = cipher.decrypt(blob, password)
        except DecryptionError:
            logger.warning("Incorrect password for entry %s", entry.name)
            return BAD_PASSWORD

        logger.info("Opened entry %s", entry.name)
        return ReadResult(ok=True, plaintext=plaintext)

    def delete(self, entry: EntryRef) -> bool:
        """Remove the entry's file.  Deleting a missing entry is a no-op."""
        entry = self._entry(entry)
        try:
            os.remove(entry.path)
            logger.info("Deleted entry %s", entry.name)
        except FileNotFoundError:
            logger.debug("Delete of missing entry %s ignored", entry.name)
        self._silent_remove(entry.path + ".tmp")
        return True

    # ------------------------------------------------------------------
    # Re-encryption
    # ------------------------------------------------------------------

    def change_password(
        self, entry: EntryRef, old_password: Optional[str], new_password: Optional[str]
    ) -> ReadResult:
        """
        Re-encrypt an entry under *new_password*.

        Both passwords are validated up front.  If *old_password* does not
        open the entry, BAD_PASSWORD is returned and the file is unchanged.
        """
        validate_password(new_password)
        result = self.read(entry, old_password)
        if not result.ok:
            return result
        self.write(entry, result.plaintext, new_password)
        logger.info("Changed password for entry %s", self._entry(entry).name)
        return result

    def migrate(self, entry: EntryRef, password: Optional[str]) -> ReadResult:
        """Rewrite an entry in the store's current cipher format."""
        result = self.read(entry, password)
        if result.ok:
            self.write(entry, result.plaintext, password)
            logger.info(
                "Migrated entry %s to %s format",
                self._entry(entry).name, self.cipher.name,
            )
        return result

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    @staticmethod
    def _silent_remove(path: str) -> None:
        """Remove a stale temporary file, logging rather than raising."""
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError:
            logger.exception("Failed to remove %s", path)
