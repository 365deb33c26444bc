"""Git command runner used for mirror transfers."""

import asyncio
import os
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..models.repository import RemoteEndpoint

# stderr fragments that mean retrying cannot help
PERMANENT_ERROR_PATTERNS = (
    'not found',
    'does not appear to be a git repository',
    'authentication failed',
    'permission denied',
    'could not read username',
    'invalid username or password',
    'access denied',
    'already exists',
    'protected branch',
    'pre-receive hook declined',
)

# stderr fragments that point at the network or the remote having a bad moment
TRANSIENT_ERROR_PATTERNS = (
    'could not resolve host',
    'connection reset',
    'connection refused',
    'connection timed out',
    'operation timed out',
    'early eof',
    'the remote end hung up unexpectedly',
    'rpc failed',
    'http 500',
    'http 502',
    'http 503',
    'http 504',
    'ssl_error',
    'gnutls',
    'temporary failure',
)


class GitCommandError(Exception):
    """A git command exited non-zero or timed out."""

    def __init__(
        self,
        command: str,
        returncode: Optional[int],
        stderr: str = '',
        timed_out: bool = False,
    ):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr.strip()
        self.timed_out = timed_out
        if timed_out:
            message = f'git {command} timed out'
        else:
            message = f'git {command} exited with {returncode}'
        if self.stderr:
            message += f': {self.stderr.splitlines()[-1]}'
        super().__init__(message)

    @property
    def transient(self) -> bool:
        """Timeouts and network trouble are transient; anything else is not."""
        if self.timed_out:
            return True
        text = self.stderr.lower()
        if any(pattern in text for pattern in PERMANENT_ERROR_PATTERNS):
            return False
        return any(pattern in text for pattern in TRANSIENT_ERROR_PATTERNS)


def credential_env(endpoints: Sequence[RemoteEndpoint]) -> Dict[str, str]:
    """Environment that makes git send each endpoint's Authorization header.

    Uses ``GIT_CONFIG_COUNT``/``GIT_CONFIG_KEY_n``/``GIT_CONFIG_VALUE_n``
    so the header never shows up in process arguments. The header is
    scoped to the endpoint URL via ``http.<url>.extraHeader``.
    """
    env: Dict[str, str] = {}
    index = 0
    for endpoint in endpoints:
        if not endpoint.auth_header:
            continue
        env[f'GIT_CONFIG_KEY_{index}'] = f'http.{endpoint.url}.extraHeader'
        env[f'GIT_CONFIG_VALUE_{index}'] = f'Authorization: {endpoint.auth_header}'
        index += 1
    if index:
        env['GIT_CONFIG_COUNT'] = str(index)
    return env


class GitRunner:
    """Runs git subprocesses with a timeout and injected credentials.

    Exposes the four operations a mirror transfer needs: mirror clone,
    remote add, push branches and push tags.
    """

    def __init__(self, executable: str = 'git', timeout: int = 600):
        """Initialize git runner.

        Args:
            executable: Git binary to invoke
            timeout: Seconds before a git command is killed
        """
        self.executable = executable
        self.timeout = timeout
        self.logger = logger.bind(component='GitRunner')

    async def mirror_clone(self, source: RemoteEndpoint, repo_path: str) -> None:
        """Clone all refs of ``source`` into a bare repository at ``repo_path``."""
        await self._run(
            ['clone', '--mirror', '--quiet', source.url, repo_path],
            endpoints=[source],
        )

    async def add_remote(self, repo_path: str, name: str, destination: RemoteEndpoint) -> None:
        """Register ``destination`` as remote ``name``."""
        await self._run(['remote', 'add', name, destination.url], cwd=repo_path)

    async def push_all(self, repo_path: str, remote: str, destination: RemoteEndpoint) -> None:
        """Push every branch to ``remote``."""
        await self._run(
            ['push', '--quiet', remote, '--all'],
            cwd=repo_path,
            endpoints=[destination],
        )

    async def push_tags(self, repo_path: str, remote: str, destination: RemoteEndpoint) -> None:
        """Push every tag to ``remote``."""
        await self._run(
            ['push', '--quiet', remote, '--tags'],
            cwd=repo_path,
            endpoints=[destination],
        )

    async def version(self) -> Optional[str]:
        """Return the git version string, or None if git is unavailable."""
        try:
            stdout = await self._run(['--version'])
        except (GitCommandError, OSError):
            return None
        return stdout.strip()

    async def _run(
        self,
        args: List[str],
        cwd: Optional[str] = None,
        endpoints: Sequence[RemoteEndpoint] = (),
    ) -> str:
        """Run one git command.

        Returns:
            Decoded stdout

        Raises:
            GitCommandError: On non-zero exit or timeout
        """
        command = args[0]
        env = os.environ.copy()
        env['GIT_TERMINAL_PROMPT'] = '0'
        env.update(credential_env(endpoints))

        self.logger.debug(f'Running git {" ".join(args)}' + (f' in {cwd}' if cwd else ''))

        process = await asyncio.create_subprocess_exec(
            self.executable,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            # Last resort: the command overran its budget
            process.kill()
            await process.wait()
            self.logger.warning(f'git {command} killed after {self.timeout}s')
            raise GitCommandError(command, None, timed_out=True)
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        stdout_text = stdout.decode(errors='replace') if stdout else ''
        stderr_text = stderr.decode(errors='replace') if stderr else ''

        if process.returncode != 0:
            raise GitCommandError(command, process.returncode, stderr_text)

        return stdout_text
