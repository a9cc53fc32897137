"""
Common CLI utilities and decorators for consistent command behavior.
"""

import sys
import click
from contextlib import ExitStack
from functools import wraps
from typing import Optional

from .config import configure_logging, load_input, logger
from .domain.repository import Repository
from .exit_codes import (
    SUCCESS,
    get_exit_code_for_exception, CommandError, BackendInvocationError
)
from .infra.hg_client import HgClient
from .infra.ssh_agent import CredentialSession, credential_session
from .output import emit, emit_error


def make_client(
    repository: Repository,
    credentials: Optional[CredentialSession] = None,
) -> HgClient:
    """Build the HgClient for `repository`, using `credentials` if staged."""
    if credentials is None:
        return HgClient(skip_ssl_verification=repository.skip_ssl_verification, env={})
    return HgClient(
        skip_ssl_verification=repository.skip_ssl_verification,
        env=credentials.environ,
        ssh_command=credentials.ssh_command,
    )


def resource_command(func):
    """
    Decorator that provides standard resource behavior:
    - Reads the JSON envelope from stdin
    - Stages the SSH key (if any) for the duration of the command
    - Builds the HgClient the command runs against
    - Clean JSON output on stdout, diagnostics on stderr
    - Consistent error handling and exit codes

    The wrapped function receives `resource` and `credentials` (the
    CredentialSession, or None without a private key) keyword arguments
    and returns the result to emit.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        verbose = kwargs.pop('verbose', False)
        pretty = kwargs.pop('pretty', False)
        configure_logging(verbose)

        try:
            resource = load_input(click.get_text_stream('stdin'))

            with ExitStack() as stack:
                credentials = None
                if resource.source.private_key:
                    credentials = stack.enter_context(credential_session(resource.source.private_key))

                result = func(*args, resource=resource, credentials=credentials, **kwargs)

            emit(result, pretty=pretty)

        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except BackendInvocationError as e:
            emit_error(str(e), e.output)
            sys.exit(e.exit_code)
        except CommandError as e:
            emit_error(str(e))
            sys.exit(e.exit_code)
        except Exception as e:
            logger.debug("Unexpected error", exc_info=True)
            emit_error(f"Command failed: {e}")
            sys.exit(get_exit_code_for_exception(e))

        sys.exit(SUCCESS)

    return wrapper


# Standard options that every command shares
common_options = {
    'verbose': click.option('-v', '--verbose', is_flag=True,
                            help='Log every hg invocation to stderr'),
    'pretty': click.option('--pretty', is_flag=True,
                           help='Render the result as a table instead of JSON'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('verbose', 'pretty')
        def my_command(verbose, pretty):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator
