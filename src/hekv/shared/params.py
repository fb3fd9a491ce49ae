"""
Algebra parameters and the multiplicative depth budget they imply.

The equality mask needs ``ceil(log2(t - 1))`` levels for the Fermat power
plus ``ceil(log2(W))`` levels for the rotate-and-multiply AND over the
``W``-slot window; multiplying the mask into the entry value costs one more.
The bit-serial comparator is a fixed 16-round circuit plus the final mask.
"""
from dataclasses import dataclass, asdict
from typing import List

from hekv.shared.errors import ConfigurationError

WORD_BITS = 16          # comparator word size
PRIME_BITS = 60         # largest prime SEAL accepts in the modulus chain
MIN_PRIME_BITS = 20
NOISE_MARGIN_BITS = 10  # per-level slack used by estimated_depth

BACKENDS = ("seal", "clear")
SECURITY_LEVELS = (0, 128, 192, 256)


def ceil_log2(value: int) -> int:
    """Smallest k with 2**k >= value (0 for value <= 1)."""
    return max(0, (value - 1).bit_length())


def is_prime(value: int) -> bool:
    if value < 2:
        return False
    if value % 2 == 0:
        return value == 2
    divisor = 3
    while divisor * divisor <= value:
        if value % divisor == 0:
            return False
        divisor += 2
    return True


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


@dataclass
class LookupParams:
    """
    Deployment parameters for the lookup algebra.

    Attributes:
        p: Plaintext prime modulus
        m: Cyclotomic index (power of two, ring degree n = m / 2)
        r: Hensel lifting exponent, plaintext modulus is p ** r
        bits: Total bits of the ciphertext modulus chain
        c: Key-switching matrix columns (validated and reported only)
        nthreads: Worker threads for per-entry mask computation
        slots: Logical slot window W (power of two, divides n / 2)
        sec: SEAL security level, 0 disables the security check
        backend: "seal" (Pyfhel BFV) or "clear" (numpy simulation)
    """
    p: int = 257
    m: int = 256
    r: int = 1
    bits: int = 1000
    c: int = 2
    nthreads: int = 1
    slots: int = 16
    sec: int = 0
    backend: str = "seal"

    @property
    def n(self) -> int:
        """Ring degree (SEAL poly_modulus_degree)."""
        return self.m // 2

    @property
    def plaintext_modulus(self) -> int:
        return self.p ** self.r

    @property
    def fermat_depth(self) -> int:
        return ceil_log2(self.plaintext_modulus - 1)

    @property
    def mask_depth(self) -> int:
        return self.fermat_depth + ceil_log2(self.slots)

    @property
    def lookup_depth(self) -> int:
        return self.mask_depth + 1

    @property
    def comparator_depth(self) -> int:
        return WORD_BITS + 1

    @property
    def required_depth(self) -> int:
        """Deepest circuit this deployment is expected to evaluate."""
        if self.slots >= WORD_BITS:
            return max(self.lookup_depth, self.comparator_depth)
        return self.lookup_depth

    @property
    def qi_sizes(self) -> List[int]:
        """Modulus chain prime sizes; the remainder prime goes first."""
        full, rest = divmod(self.bits, PRIME_BITS)
        sizes = [PRIME_BITS] * full
        if rest >= MIN_PRIME_BITS:
            sizes.insert(0, rest)
        return sizes

    @property
    def estimated_depth(self) -> int:
        """
        Rough number of multiplicative levels the chain sustains.

        Each BFV multiplication consumes about log2(t) + log2(n) bits of
        noise budget; the last prime is the key-switching special prime.
        """
        t_bits = self.plaintext_modulus.bit_length()
        per_level = t_bits + self.n.bit_length() + NOISE_MARGIN_BITS
        usable = sum(self.qi_sizes[:-1]) - t_bits
        return max(0, usable // per_level)

    def validate(self) -> "LookupParams":
        """
        Check the parameters and return self.

        Raises:
            ConfigurationError: if any parameter is unusable
        """
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend {self.backend!r}, expected one of {BACKENDS}"
            )
        if not is_prime(self.p):
            raise ConfigurationError(f"Plaintext modulus p={self.p} is not prime")
        if self.r != 1:
            raise ConfigurationError(
                f"Hensel lifting r={self.r} unsupported: the Fermat equality "
                "test needs a prime plaintext field (r == 1)"
            )
        if not _is_power_of_two(self.m) or self.m < 4:
            raise ConfigurationError(
                f"Cyclotomic index m={self.m} must be a power of two >= 4"
            )
        if self.plaintext_modulus % self.m != 1:
            raise ConfigurationError(
                f"Batching needs t = 1 (mod m); got t={self.plaintext_modulus}, m={self.m}"
            )
        if not _is_power_of_two(self.slots) or self.slots > self.n // 2:
            raise ConfigurationError(
                f"Slot window {self.slots} must be a power of two <= n/2 = {self.n // 2}"
            )
        if len(self.qi_sizes) < 2:
            raise ConfigurationError(
                f"bits={self.bits} gives fewer than two modulus primes"
            )
        if self.c < 1:
            raise ConfigurationError(f"Key-switching columns c={self.c} must be >= 1")
        if self.nthreads < 1:
            raise ConfigurationError(f"nthreads={self.nthreads} must be >= 1")
        if self.sec not in SECURITY_LEVELS:
            raise ConfigurationError(
                f"Security level sec={self.sec} must be one of {SECURITY_LEVELS}"
            )
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    def summary(self) -> str:
        """Human readable description of the algebra."""
        return (
            f"Algebra: backend={self.backend} p={self.p} r={self.r} "
            f"m={self.m} (n={self.n})\n"
            f"  Slot window:      {self.slots}\n"
            f"  Modulus chain:    {self.bits} bits {self.qi_sizes}\n"
            f"  Key switching c:  {self.c}\n"
            f"  Security level:   {self.sec or 'unset (demo only)'}\n"
            f"  Lookup depth:     {self.lookup_depth}\n"
            f"  Comparator depth: {self.comparator_depth}\n"
            f"  Estimated depth:  {self.estimated_depth}"
        )
