"""Supabase Storage artifact store."""

from dataclasses import dataclass

from supabase import Client

from leaderbot.services.generation import ArtifactStore


@dataclass
class SupabaseArtifactStore(ArtifactStore):
    """Uploads generated images to a Supabase Storage bucket."""

    client: Client
    bucket: str = "generated-images"

    def save(self, path: str, data: bytes, content_type: str) -> int:
        """Upload bytes to the bucket and return their length."""
        self.client.storage.from_(self.bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type, "upsert": "false"},
        )
        return len(data)


def public_bucket_url(supabase_url: str, bucket: str) -> str:
    """Return the base URL under which a public bucket serves its objects."""
    return f"{supabase_url.rstrip('/')}/storage/v1/object/public/{bucket}"
