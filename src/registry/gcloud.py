"""gcloud-backed registry access.

Lists tags and applies tag mutations by shelling out to the gcloud CLI:

    gcloud container images list-tags REG/IMAGE --format=json
    gcloud container images add-tag --quiet SRC/IMAGE@DIGEST DEST/IMAGE:TAG
    gcloud container images untag --quiet DEST/IMAGE:TAG
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from common import run_command
from inventory import DigestTags, ImageName, RegistryName
from promoter.reconcile import PromotionRequest, TagOp

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """A registry call failed."""


@dataclass
class GcloudRegistry:
    """Inventory reader and tag mutator backed by gcloud.

    Attributes:
        service_account: Account passed as --account (None = gcloud default)
        timeout: Per-command timeout in seconds
        gcloud: gcloud executable
    """
    service_account: Optional[str] = None
    timeout: int = 300
    gcloud: str = 'gcloud'

    def _cmd(self, *args: str) -> list[str]:
        cmd = [self.gcloud, *args]
        if self.service_account:
            cmd.append(f'--account={self.service_account}')
        return cmd

    def _run(self, cmd: list[str]) -> str:
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            raise RegistryError(f"{' '.join(cmd[:4])} failed (rc={rc}): {err.strip()}")
        return out

    def list_tags(self, registry: RegistryName, image: ImageName) -> DigestTags:
        """Return the digest -> tags mapping of REGISTRY/IMAGE.

        An image that does not exist yet lists as empty.

        Raises:
            RegistryError: If gcloud fails or prints unparseable output
        """
        cmd = self._cmd(
            'container', 'images', 'list-tags', f'{registry}/{image}', '--format=json',
        )
        rc, out, err = run_command(cmd, timeout=self.timeout)
        if rc != 0:
            if 'NAME_UNKNOWN' in err:
                logger.debug(f"{registry}/{image} does not exist yet")
                return {}
            raise RegistryError(f"list-tags {registry}/{image} failed (rc={rc}): {err.strip()}")
        try:
            entries = json.loads(out or '[]')
        except json.JSONDecodeError as e:
            raise RegistryError(f"Unparseable list-tags output for {registry}/{image}: {e}")

        digest_tags: DigestTags = {}
        for entry in entries:
            digest = entry.get('digest')
            if not digest:
                continue
            digest_tags[digest] = list(entry.get('tags') or [])
        logger.debug(f"{registry}/{image}: {len(digest_tags)} digests")
        return digest_tags

    def execute(self, request: PromotionRequest) -> None:
        """Apply one tag mutation.

        Raises:
            RegistryError: If gcloud reports failure
        """
        dest_ref = f'{request.registries.dest}/{request.image_name}:{request.tag}'
        if request.tag_op == TagOp.DELETE:
            cmd = self._cmd('container', 'images', 'untag', '--quiet', dest_ref)
        else:
            # add-tag overwrites an existing tag, which is what MOVE needs
            src_ref = f'{request.registries.src}/{request.image_name}@{request.digest}'
            cmd = self._cmd('container', 'images', 'add-tag', '--quiet', src_ref, dest_ref)

        logger.info(request.describe())
        self._run(cmd)
