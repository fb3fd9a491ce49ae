"""
Command-line demonstration of the encrypted key/value lookup.

Reads a ``key,value`` CSV table, encrypts it into a store through the
store command interface, then answers one query without the computing
side ever seeing the query or the table in the clear.

Usage:
    hekv --db-filename data/countries_dataset.csv
    hekv --query Spain --backend clear --debug
    hekv --compare 3 1
"""
import argparse
import logging
import sys
from typing import Callable, List, Optional

from hekv.client.crypto import CryptoClient
from hekv.client.lookup import LookupClient
from hekv.fhe import load_backend
from hekv.server.comparator import BitSerialComparator
from hekv.server.store import InMemoryStore, LookupService
from hekv.shared.errors import ConfigurationError
from hekv.shared.params import BACKENDS, SECURITY_LEVELS, LookupParams
from hekv.shared.utils import Metrics, read_table

logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "data/countries_dataset.csv"

BANNER = (
    "*********************************************************\n"
    "*         Privacy Preserving Key/Value Lookup           *\n"
    "*         ===================================           *\n"
    "*                                                       *\n"
    "* This is a sample program for education purposes only. *\n"
    "* It implements a very simple homomorphic encryption    *\n"
    "* based database lookup for demonstration purposes.     *\n"
    "*                                                       *\n"
    "*********************************************************"
)


def build_parser() -> argparse.ArgumentParser:
    defaults = LookupParams()
    parser = argparse.ArgumentParser(
        prog="hekv",
        description="Privacy-preserving exact-match lookup over an encrypted table",
    )
    parser.add_argument("--p", type=int, default=defaults.p, help="Plaintext prime modulus")
    parser.add_argument("--m", type=int, default=defaults.m, help="Cyclotomic index (power of two)")
    parser.add_argument("--r", type=int, default=defaults.r, help="Hensel lifting")
    parser.add_argument("--bits", type=int, default=defaults.bits, help="Bits in the modulus chain")
    parser.add_argument("--c", type=int, default=defaults.c, help="Columns of the key-switching matrix")
    parser.add_argument("--nthreads", type=int, default=defaults.nthreads, help="Worker threads")
    parser.add_argument("--slots", type=int, default=defaults.slots, help="Slot window per key/value")
    parser.add_argument(
        "--sec", type=int, default=defaults.sec, choices=SECURITY_LEVELS,
        help="SEAL security level (0 = unchecked demo parameters)",
    )
    parser.add_argument("--backend", default=defaults.backend, choices=BACKENDS)
    parser.add_argument(
        "--db-filename", default=DEFAULT_DB_FILENAME,
        help="Key,value CSV table to encrypt",
    )
    parser.add_argument("--query", default=None, help="Key to look up (prompted if omitted)")
    parser.add_argument(
        "--compare", nargs=2, type=int, metavar=("X", "Y"), default=None,
        help="Run the bit-serial comparator on two 16-bit integers instead",
    )
    parser.add_argument("--debug", action="store_true", help="Print context details and timings")
    return parser


def params_from_args(args: argparse.Namespace) -> LookupParams:
    return LookupParams(
        p=args.p,
        m=args.m,
        r=args.r,
        bits=args.bits,
        c=args.c,
        nthreads=args.nthreads,
        slots=args.slots,
        sec=args.sec,
        backend=args.backend,
    )


def _init_client(params: LookupParams, metrics: Metrics, debug: bool) -> CryptoClient:
    print("---Initialising HE Environment ...")
    with metrics.phase("context_and_keys"):
        client = CryptoClient.generate(params)
    if debug:
        print(params.summary())
    if params.sec == 0:
        print("\n***Security Level: unchecked (demonstration parameters)")
    print(f"Number of slots: {client.backend.slot_count}")
    return client


def run_lookup_demo(
    params: LookupParams,
    db_filename: str,
    query: Optional[str] = None,
    debug: bool = False,
    input_fn: Callable[[str], str] = input,
) -> int:
    """
    Encrypt the table, answer one query and print the result.

    Returns:
        Process exit code
    """
    metrics = Metrics()
    client = _init_client(params, metrics, debug)

    print(f"\n---Initializing the encrypted key,value database from {db_filename}")
    with metrics.phase("read_table"):
        entries = read_table(db_filename, codec=client.codec)

    service = LookupService(InMemoryStore(), workers=params.nthreads)
    public_key = client.public_key
    service.set_public_context(public_key.context, public_key.key)

    print(f"Encrypting the database ({len(entries)} entries)...")
    with metrics.phase("encrypt_table"):
        for entry in entries:
            encrypted = client.encrypt_entry(entry)
            service.set_entry(client.serialize(encrypted.key), client.serialize(encrypted.value))

    print("\nInitialization Completed - Ready for Queries")
    print("--------------------------------------------")

    if query is None:
        query = input_fn("\nPlease enter a key to look up: ")
    print(f"Looking for the value of {query}")
    print("This may take a few minutes ...")

    lookup_client = LookupClient(client)
    result = lookup_client.lookup_serialized(
        query,
        lambda payload: service.lookup(payload, metrics=metrics),
        metrics=metrics,
    )

    print(f"\nQuery result: {result}")
    if debug:
        print("\nTimings:")
        print(metrics.report())
    return 0


def run_compare_demo(params: LookupParams, x: int, y: int, debug: bool = False) -> int:
    """Compare two integers with the bit-serial comparator and print the outcome."""
    metrics = Metrics()
    client = _init_client(params, metrics, debug)

    with metrics.phase("encrypt_operands"):
        x_ctxt, neg_y_ctxt = client.encrypt_comparison_operands(x, y)

    # the evaluating side only sees public key material and serialized operands
    evaluator = load_backend(client.public_key)
    comparator = BitSerialComparator(evaluator)
    with metrics.phase("comparator"):
        x_remote = evaluator.deserialize(client.serialize(x_ctxt))
        neg_y_remote = evaluator.deserialize(client.serialize(neg_y_ctxt))
        difference = client.deserialize(
            evaluator.serialize(comparator.difference_indicator(x_remote, neg_y_remote))
        )
        sign = client.deserialize(
            evaluator.serialize(comparator.sign_indicator(x_remote, neg_y_remote))
        )

    with metrics.phase("decrypt_result"):
        differing_bits = client.decrypt_scalar(difference)
        less_than = client.decrypt_scalar(sign)

    print(f"\nDiffering bits of {x} - {y}: {differing_bits}")
    print(f"{x} == {y}: {differing_bits == 0}")
    print(f"{x} < {y}: {less_than == 1}")
    if debug:
        print("\nTimings:")
        print(metrics.report())
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    params = params_from_args(args)
    print(BANNER + "\n")
    try:
        params.validate()
        if params.estimated_depth < params.required_depth:
            logger.warning(
                "Modulus chain of %d bits sustains about %d levels, circuits need %d; "
                "results may decrypt to garbage",
                params.bits, params.estimated_depth, params.required_depth,
            )
        if args.compare is not None:
            return run_compare_demo(params, args.compare[0], args.compare[1], debug=args.debug)
        return run_lookup_demo(params, args.db_filename, query=args.query, debug=args.debug)
    except (ConfigurationError, ValueError) as e:
        # ValueError covers invalid query text and out-of-range operands
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
