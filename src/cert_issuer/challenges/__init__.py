"""Challenge solvers and the providers they drive."""

from cert_issuer.challenges.base import ChallengeProvider, CleanUp, PreSolver, Solver
from cert_issuer.challenges.dns.base import DnsProvider
from cert_issuer.challenges.dns01 import DNS01, DNS01Solver
from cert_issuer.challenges.http01 import HTTP01, HTTP01Solver
from cert_issuer.challenges.tlsalpn01 import TLSALPN01, TLSALPN01Solver

__all__ = [
    "DNS01",
    "HTTP01",
    "TLSALPN01",
    "ChallengeProvider",
    "CleanUp",
    "DNS01Solver",
    "DnsProvider",
    "HTTP01Solver",
    "PreSolver",
    "Solver",
    "TLSALPN01Solver",
]
