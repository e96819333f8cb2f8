"""Abstract object store and delegated fetch interfaces."""

from abc import ABC, abstractmethod


class ObjectStore(ABC):
    """Bucket holding relayed images."""

    @abstractmethod
    async def ensure_bucket(self) -> bool:
        """
        Make sure the bucket exists.

        Returns:
            True if the bucket exists or was created, False otherwise
        """
        ...

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store bytes under ``key``, overwriting any existing object.

        Returns:
            Public reference to the stored object

        Raises:
            StorageError: On network, quota or permission failures
        """
        ...

    @abstractmethod
    def get_public_ref(self, key: str) -> str:
        """Public reference for an object key."""
        ...

    @abstractmethod
    def owns(self, ref: str) -> bool:
        """True if ``ref`` already points into this store."""
        ...


class DelegatedFetcher(ABC):
    """Server-side function that downloads and stores an image on our behalf."""

    @abstractmethod
    async def fetch(self, source_url: str, destination_hint: str) -> str | None:
        """
        Ask the remote function to persist ``source_url``.

        Returns:
            Owned-storage reference, or None if the function could not store it
        """
        ...
