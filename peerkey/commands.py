#!/usr/bin/env python
#
# peerkey - secp256k1 keys and recoverable signatures
# Copyright (C) 2011 thomasv@gitorious
# Copyright (C) 2026 The peerkey developers
#
# Permission is hereby granted, free of charge, to any person
# obtaining a copy of this software and associated documentation files
# (the "Software"), to deal in the Software without restriction,
# including without limitation the rights to use, copy, modify, merge,
# publish, distribute, sublicense, and/or sell copies of the Software,
# and to permit persons to whom the Software is furnished to do so,
# subject to the following conditions:
#
# The above copyright notice and this permission notice shall be
# included in all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND,
# EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF
# MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND
# NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS OR COPYRIGHT HOLDERS
# BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN
# ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM, OUT OF OR IN
# CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

import sys
import re
import ast
import json
import argparse
from functools import wraps
from typing import Dict, TYPE_CHECKING

from .version import PEERKEY_VERSION
from .util import ECCError, bfh, is_hex_str, json_encode, print_msg, print_stderr
from .ecc import KeyPair, verify_der, recover_compact, verify_compact
from .sigencoding import normalize_der_sig
from .verifier import BatchVerifier, SignatureCheck
from .simple_config import SimpleConfig
from .logging import Logger, configure_logging
from .rng import get_random_source, SystemRandomSource

if TYPE_CHECKING:
    from .rng import RandomSource


known_commands = {}  # type: Dict[str, Command]


class Command:
    def __init__(self, func, name, s):
        self.name = name
        self.requires_secret = 's' in s
        self.parse_docstring(func.__doc__)
        varnames = func.__code__.co_varnames[1:func.__code__.co_argcount]
        self.defaults = func.__defaults__
        if self.defaults:
            n = len(self.defaults)
            self.params = list(varnames[:-n])
            self.options = list(varnames[-n:])
        else:
            self.params = list(varnames)
            self.options = []
            self.defaults = []

        # sanity checks
        if self.requires_secret:
            assert 'secret' in self.params, f"cmd: {self.name}: 'secret' not in params {self.params}"

    def parse_docstring(self, docstring):
        docstring = docstring or ''
        docstring = docstring.strip()
        self.description = docstring
        self.arg_descriptions = {}
        self.arg_types = {}
        for x in re.finditer(r'arg:(.*?):(.*?):(.*)$', docstring, flags=re.MULTILINE):
            self.arg_descriptions[x.group(2)] = x.group(3)
            self.arg_types[x.group(2)] = x.group(1)
            self.description = self.description.replace(x.group(), '')
        self.short_description = self.description.split('.')[0]


class CommandError(Exception):
    """Bad user input on the command line."""


def command(s):
    def decorator(func):
        name = func.__name__
        known_commands[name] = Command(func, name, s)

        @wraps(func)
        def func_wrapper(*args, **kwargs):
            cmd = known_commands[name]  # type: Command
            if cmd.requires_secret:
                secret = kwargs.get('secret', args[1] if len(args) > 1 else None)
                if not is_hex_str(secret) or len(secret) != 64:
                    raise CommandError('secret must be 32 bytes, hex encoded')
            return func(*args, **kwargs)
        return func_wrapper
    return decorator


def hex_arg(x: str) -> bytes:
    if not is_hex_str(x):
        raise CommandError(f'not a hex string: {x!r}')
    return bfh(x)


def digest_arg(x: str) -> bytes:
    b = hex_arg(x)
    if len(b) != 32:
        raise CommandError(f'digest must be 32 bytes, got {len(b)}')
    return b


def eval_bool(x: str) -> bool:
    if x == 'false': return False
    if x == 'true': return True
    try:
        return bool(ast.literal_eval(x))
    except Exception:
        return bool(x)


arg_types = {
    'int': int,
    'bool': eval_bool,
    'str': str,
    'hex': str,
}


class Commands(Logger):

    LOGGING_SHORTCUT = 'c'

    def __init__(self, *, config: 'SimpleConfig', rng: 'RandomSource' = None):
        Logger.__init__(self)
        self.config = config
        self.rng = rng

    def _run(self, method, *args, **kwargs):
        """This wrapper is called from unit tests and from main()."""
        f = getattr(self, method)
        return f(*args, **kwargs)

    def _keypair(self, secret: str, compressed: bool = True) -> KeyPair:
        return KeyPair.from_secret(hex_arg(secret), compressed)

    @command('')
    def version(self):
        """Return the version of peerkey."""
        return PEERKEY_VERSION

    @command('')
    def getconfig(self, key):
        """Return the current value of a configuration variable.

        arg:str:key:name of the configuration variable
        """
        return self.config.get(key)

    @command('')
    def setconfig(self, key, value):
        """Set a configuration variable.

        arg:str:key:name of the configuration variable
        arg:str:value:value. may be a string or a Python expression.
        """
        try:
            value = ast.literal_eval(value)
        except Exception:
            pass
        self.config.set_key(key, value)
        return True

    @command('')
    def listconfig(self):
        """Returns the list of all configuration variables. """
        return self.config.list_config_vars()

    @command('')
    def generate(self, uncompressed=False):
        """Generate a new random keypair.

        arg:bool:uncompressed:use the 65 byte public key encoding
        """
        rng = self.rng or get_random_source()
        if isinstance(rng, SystemRandomSource):
            rng.add_perfmon_seed(min_interval=self.config.RNG_PERFMON_INTERVAL)
        keypair = KeyPair.generate(not uncompressed, rng=rng)
        secret, compressed = keypair.to_secret()
        return {
            'secret': secret.hex(),
            'pubkey': keypair.to_public_bytes().hex(),
            'compressed': compressed,
        }

    @command('s')
    def getpubkey(self, secret, uncompressed=False):
        """Return the public key of a secret.

        arg:hex:secret:32 byte secret
        arg:bool:uncompressed:use the 65 byte public key encoding
        """
        return self._keypair(secret, not uncompressed).to_public_bytes().hex()

    @command('s')
    def exportder(self, secret, uncompressed=False):
        """Serialize a secret as a SEC1 ECPrivateKey DER structure.

        arg:hex:secret:32 byte secret
        arg:bool:uncompressed:embed the 65 byte public key encoding
        """
        return self._keypair(secret, not uncompressed).to_private_der().hex()

    @command('')
    def importder(self, der):
        """Parse a SEC1 ECPrivateKey DER structure.

        arg:hex:der:ECPrivateKey structure
        """
        keypair = KeyPair.from_private_der(hex_arg(der))
        secret, compressed = keypair.to_secret()
        return {
            'secret': secret.hex(),
            'pubkey': keypair.to_public_bytes().hex(),
            'compressed': compressed,
        }

    @command('s')
    def sign(self, secret, digest):
        """Create a DER signature of a 32 byte digest.

        arg:hex:secret:32 byte secret
        arg:hex:digest:32 byte message digest
        """
        return self._keypair(secret).sign_der(digest_arg(digest)).hex()

    @command('')
    def verify(self, pubkey, digest, signature):
        """Verify a DER signature.

        arg:hex:pubkey:public key, 33 or 65 bytes
        arg:hex:digest:32 byte message digest
        arg:hex:signature:DER signature
        """
        return verify_der(hex_arg(pubkey), digest_arg(digest), hex_arg(signature))

    @command('s')
    def signcompact(self, secret, digest, uncompressed=False):
        """Create a 65 byte recoverable signature of a 32 byte digest.

        arg:hex:secret:32 byte secret
        arg:hex:digest:32 byte message digest
        arg:bool:uncompressed:signer uses the 65 byte public key encoding
        """
        keypair = self._keypair(secret, not uncompressed)
        return keypair.sign_compact(digest_arg(digest)).hex()

    @command('')
    def recover(self, digest, signature):
        """Recover the public key that made a compact signature.

        arg:hex:digest:32 byte message digest
        arg:hex:signature:65 byte compact signature
        """
        keypair = recover_compact(digest_arg(digest), hex_arg(signature),
                                  check_order=self.config.ECC_RECOVER_CHECK_ORDER)
        if keypair is None:
            return None
        return keypair.to_public_bytes().hex()

    @command('')
    def verifycompact(self, pubkey, digest, signature):
        """Verify a compact signature against a public key.

        arg:hex:pubkey:public key, 33 or 65 bytes
        arg:hex:digest:32 byte message digest
        arg:hex:signature:65 byte compact signature
        """
        return verify_compact(hex_arg(pubkey), digest_arg(digest), hex_arg(signature),
                              check_order=self.config.ECC_RECOVER_CHECK_ORDER)

    @command('')
    def normalize(self, signature):
        """Re-encode a DER signature with minimal length fields.

        arg:hex:signature:DER signature
        """
        normalized = normalize_der_sig(hex_arg(signature))
        if normalized is None:
            return None
        return normalized.hex()

    @command('')
    def verifybatch(self, filename):
        """Verify a list of signatures in parallel.
        The file holds a JSON list of objects with the keys
        pubkey, digest, signature and optionally compact.

        arg:str:filename:path of the JSON file
        """
        with open(filename, 'r', encoding='utf-8') as f:
            items = json.load(f)
        if not isinstance(items, list):
            raise CommandError('expected a JSON list')
        checks = []
        for item in items:
            checks.append(SignatureCheck(
                pubkey=hex_arg(item['pubkey']),
                msg32=hex_arg(item['digest']),
                sig=hex_arg(item['signature']),
                compact=bool(item.get('compact', False)),
            ))
        with BatchVerifier(self.config) as verifier:
            return verifier.verify_all(checks)


def add_global_options(parser, suppress=False):
    group = parser.add_argument_group('global options')
    group.add_argument(
        "-v", dest="verbosity", default='',
        help=argparse.SUPPRESS if suppress else "Set verbosity (log levels)")
    group.add_argument(
        "-V", dest="verbosity_shortcuts", default='',
        help=argparse.SUPPRESS if suppress else "Set verbosity (shortcut-filter list)")
    group.add_argument(
        "-D", "--dir", dest="peerkey_path",
        help=argparse.SUPPRESS if suppress else "peerkey directory")
    group.add_argument(
        "--forgetconfig", action="store_true", dest=SimpleConfig.CONFIG_FORGET_CHANGES.key(), default=False,
        help=argparse.SUPPRESS if suppress else "Forget config on exit")


def get_parser():
    # create main parser
    parser = argparse.ArgumentParser(
        epilog="Run 'peerkey <command> -h' to see the help for a command")
    parser.add_argument("--version", dest="cmd", action='store_const', const='version', help="Return the version of peerkey.")
    add_global_options(parser)
    subparsers = parser.add_subparsers(dest='cmd', metavar='<command>')
    # commands
    for cmdname in sorted(known_commands.keys()):
        cmd = known_commands[cmdname]
        p = subparsers.add_parser(
            cmdname,
            description=cmd.description,
            help=cmd.short_description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="Run 'peerkey -h' to see the list of global options",
        )
        for optname, default in zip(cmd.options, cmd.defaults):
            help = cmd.arg_descriptions.get(optname)
            action = "store_true" if default is False else 'store'
            if action == 'store':
                type_descriptor = cmd.arg_types.get(optname)
                _type = arg_types.get(type_descriptor, str)
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help, type=_type)
            else:
                p.add_argument('--' + optname, dest=optname, action=action, default=default, help=help)
        add_global_options(p, suppress=True)

        for param in cmd.params:
            help = cmd.arg_descriptions.get(param)
            type_descriptor = cmd.arg_types.get(param)
            _type = arg_types.get(type_descriptor)
            p.add_argument(param, help=help, type=_type)
    return parser


def main(argv=None) -> int:
    parser = get_parser()
    args = parser.parse_args(argv)
    if args.cmd is None:
        parser.print_help()
        return 1
    config_options = {k: v for k, v in vars(args).items() if v is not None and v != ''}
    cmdname = config_options.pop('cmd')
    cmd = known_commands[cmdname]
    config = SimpleConfig(config_options)
    configure_logging(config)
    cmd_runner = Commands(config=config)
    kwargs = {}
    for x in cmd.params + cmd.options:
        kwargs[x] = config_options.get(x)
    for x, default in zip(cmd.options, cmd.defaults):
        if kwargs[x] is None:
            kwargs[x] = default
    try:
        result = cmd_runner._run(cmdname, **kwargs)
    except (ECCError, CommandError, OSError, ValueError, KeyError) as e:
        print_stderr(f"error: {e}")
        return 1
    print_msg(json_encode(result))
    return 0


if __name__ == '__main__':
    sys.exit(main())
