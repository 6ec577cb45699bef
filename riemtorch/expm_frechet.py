"""Fréchet derivative of the matrix exponential.

Scaling-and-squaring with diagonal Padé approximants of orders 3, 5, 7, 9 and
13, differentiated term by term so that ``exp(A)`` and ``D exp(A)[E]`` come out
of the same factorization.

Reference:
    A. H. Al-Mohy and N. J. Higham, "Computing the Fréchet derivative of the
    matrix exponential, with an application to condition number estimation",
    SIAM J. Matrix Anal. Appl. 30(4), 1639-1657, 2009.
"""

import math
from typing import List, Sequence, Tuple

import torch
from torch import Tensor

from ._logging import get_logger
from .errors import DimensionMismatch

logger = get_logger(__name__)

# Bounds on ‖A‖₁ for which the order-m Padé approximant reaches double
# precision, indexed by the order m.
ELL_TABLE_61 = (
    None,
    2.11e-8,
    3.56e-4,
    1.08e-2,
    6.49e-2,
    2.00e-1,
    4.37e-1,
    7.83e-1,
    1.23e0,
    1.78e0,
    2.42e0,
    3.13e0,
    3.90e0,
    4.74e0,
    5.63e0,
    6.56e0,
    7.52e0,
    8.53e0,
    9.56e0,
    1.06e1,
    1.17e1,
)

PADE_COEFFICIENTS = {
    3: (120., 60., 12., 1.),
    5: (30240., 15120., 3360., 420., 30., 1.),
    7: (17297280., 8648640., 1995840., 277200., 25200., 1512., 56., 1.),
    9: (17643225600., 8821612800., 2075673600., 302702400., 30270240.,
        2162160., 110880., 3960., 90., 1.),
    13: (64764752532480000., 32382376266240000., 7771770303897600.,
         1187353796428800., 129060195264000., 10559470521600.,
         670442572800., 33522128640., 1323241920., 40840800., 960960.,
         16380., 182., 1.),
}

# Number of k×k row blocks in the scratch buffer of expm_frechet_buffered.
BUFFER_BLOCKS = 16


def _prepare(A, E) -> Tuple[Tensor, Tensor]:
    A = torch.as_tensor(A)
    E = torch.as_tensor(E, device=A.device)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise DimensionMismatch(f"expm_frechet expects a square matrix A, got shape {tuple(A.shape)}")
    if E.shape != A.shape:
        raise DimensionMismatch(
            f"expm_frechet expects E with the shape of A {tuple(A.shape)}, got {tuple(E.shape)}"
        )
    dtype = torch.promote_types(A.dtype, E.dtype)
    if not (dtype.is_floating_point or dtype.is_complex):
        dtype = torch.get_default_dtype()
    return A.to(dtype), E.to(dtype)


def _select_order(A: Tensor) -> Tuple[int, int]:
    """Padé order and number of squarings for ``A``."""
    A_norm_1 = float(torch.linalg.matrix_norm(A, ord=1))
    # The bound for order m is ELL_TABLE_61[m], as in scipy.linalg.expm_frechet.
    for m in (3, 5, 7, 9):
        if A_norm_1 <= ELL_TABLE_61[m]:
            return m, 0
    s = max(0, int(math.ceil(math.log2(A_norm_1 / ELL_TABLE_61[13]))))
    return 13, s


def frechet_buffer(A: Tensor) -> Tensor:
    """Allocate a scratch buffer for :func:`expm_frechet_buffered`."""
    k = A.shape[0]
    return torch.empty(BUFFER_BLOCKS * k, k, dtype=A.dtype, device=A.device)


def _blocks(buff: Tensor, k: int) -> List[Tensor]:
    return [buff[i * k:(i + 1) * k] for i in range(BUFFER_BLOCKS)]


def _diff_pade_into(blocks: Sequence[Tensor], A: Tensor, E: Tensor, ident: Tensor, m: int) -> None:
    """Buffered order-m Padé terms, m <= 9.

    Writes U, V, Lu, Lv into blocks 0-3 and uses blocks 4-11 for
    ``A2, M2, A4, M4, A6, M6, A8, M8``.
    """
    b = PADE_COEFFICIENTS[m]
    U, V, Lu, Lv = blocks[:4]
    count = (m - 1) // 2
    powers = blocks[4:4 + 2 * count:2]
    derivs = blocks[5:5 + 2 * count:2]

    torch.mm(A, A, out=powers[0])
    torch.mm(A, E, out=derivs[0])
    derivs[0].addmm_(E, A)
    if count >= 2:
        A2, M2 = powers[0], derivs[0]
        torch.mm(A2, A2, out=powers[1])
        torch.mm(A2, M2, out=derivs[1])
        derivs[1].addmm_(M2, A2)
    if count >= 3:
        A2, M2, A4, M4 = powers[0], derivs[0], powers[1], derivs[1]
        torch.mm(A2, A4, out=powers[2])
        torch.mm(A4, M2, out=derivs[2])
        derivs[2].addmm_(M4, A2)
    if count >= 4:
        A4, M4 = powers[1], derivs[1]
        torch.mm(A4, A4, out=powers[3])
        torch.mm(A4, M4, out=derivs[3])
        derivs[3].addmm_(M4, A4)

    Z = b[1] * ident
    V.copy_(b[0] * ident)
    for j, P in enumerate(powers, start=1):
        Z = Z + b[2 * j + 1] * P
        V.add_(P, alpha=b[2 * j])
    torch.mm(A, Z, out=U)
    torch.mm(E, Z, out=Lu)
    Lv.zero_()
    for j, M in enumerate(derivs, start=1):
        Lu.addmm_(A, M, alpha=b[2 * j + 1])
        Lv.add_(M, alpha=b[2 * j])


def _diff_pade13_into(blocks: Sequence[Tensor], A: Tensor, E: Tensor, ident: Tensor) -> None:
    """Buffered order-13 Padé terms; all sixteen blocks are written."""
    b = PADE_COEFFICIENTS[13]
    U, V, Lu, Lv, A2, M2, A4, M4, A6, M6, W1, Z1, W, Lw1, Lz1, Lw = blocks

    torch.mm(A, A, out=A2)
    torch.mm(A, E, out=M2)
    M2.addmm_(E, A)
    torch.mm(A2, A2, out=A4)
    torch.mm(A2, M2, out=M4)
    M4.addmm_(M2, A2)
    torch.mm(A2, A4, out=A6)
    torch.mm(A4, M2, out=M6)
    M6.addmm_(M4, A2)

    torch.mul(A6, b[13], out=W1)
    W1.add_(A4, alpha=b[11]).add_(A2, alpha=b[9])
    torch.mul(A6, b[12], out=Z1)
    Z1.add_(A4, alpha=b[10]).add_(A2, alpha=b[8])

    torch.mm(A6, W1, out=W)
    W.add_(A6, alpha=b[7]).add_(A4, alpha=b[5]).add_(A2, alpha=b[3]).add_(ident, alpha=b[1])
    torch.mm(A, W, out=U)
    torch.mm(A6, Z1, out=V)
    V.add_(A6, alpha=b[6]).add_(A4, alpha=b[4]).add_(A2, alpha=b[2]).add_(ident, alpha=b[0])

    torch.mul(M6, b[13], out=Lw1)
    Lw1.add_(M4, alpha=b[11]).add_(M2, alpha=b[9])
    torch.mul(M6, b[12], out=Lz1)
    Lz1.add_(M4, alpha=b[10]).add_(M2, alpha=b[8])

    torch.mm(A6, Lw1, out=Lw)
    Lw.addmm_(M6, W1)
    Lw.add_(M6, alpha=b[7]).add_(M4, alpha=b[5]).add_(M2, alpha=b[3])
    torch.mm(A, Lw, out=Lu)
    Lu.addmm_(E, W)
    torch.mm(A6, Lz1, out=Lv)
    Lv.addmm_(M6, Z1)
    Lv.add_(M6, alpha=b[6]).add_(M4, alpha=b[4]).add_(M2, alpha=b[2])




def _expm_frechet_into(buff: Tensor, A: Tensor, E: Tensor) -> Tuple[Tensor, Tensor]:
    """Shared kernel of :func:`expm_frechet` and :func:`expm_frechet_buffered`.

    ``A``, ``E`` and ``buff`` must already agree in shape, dtype and device.
    """
    k = A.shape[0]
    blocks = _blocks(buff, k)
    ident = torch.eye(k, dtype=buff.dtype, device=buff.device)
    m, s = _select_order(A)
    logger.debug("expm_frechet: Pade order %d, %d squarings", m, s)
    if m == 13:
        scale = 2.0 ** -s
        _diff_pade13_into(blocks, scale * A, scale * E, ident)
    else:
        _diff_pade_into(blocks, A, E, ident, m)

    buff[4 * k:8 * k].copy_(buff[:4 * k])
    eA, eAf, tmp = blocks[:3]
    U, V, Lu, Lv = blocks[4:8]

    # factor once, solve twice
    LU, pivots = torch.linalg.lu_factor(V - U)
    torch.add(U, V, out=tmp)
    eA.copy_(torch.linalg.lu_solve(LU, pivots, tmp))
    torch.sub(Lu, Lv, out=tmp)
    torch.mm(tmp, eA, out=eAf)
    eAf.add_(Lu).add_(Lv)
    eAf.copy_(torch.linalg.lu_solve(LU, pivots, eAf))

    for _ in range(s):
        torch.mm(eA, eAf, out=tmp)
        tmp.addmm_(eAf, eA)
        eAf.copy_(tmp)
        torch.mm(eA, eA, out=tmp)
        eA.copy_(tmp)
    return eA, eAf


def expm_frechet(A, E) -> Tuple[Tensor, Tensor]:
    """Matrix exponential of ``A`` and its Fréchet derivative in direction ``E``.

    Runs the same kernel as :func:`expm_frechet_buffered` on a fresh buffer,
    so both return bit-identical results.

    Args:
        A: Square matrix, real or complex.
        E: Direction, same shape as ``A``.

    Returns:
        Tuple ``(exp(A), D exp(A)[E])``.

    Raises:
        DimensionMismatch: If ``A`` is not square or ``E`` has another shape.

    Example:
        >>> A = torch.tensor([[0., 1.], [0., 0.]])
        >>> E = torch.tensor([[0., 0.], [1., 0.]])
        >>> eA, dA = expm_frechet(A, E)
    """
    A, E = _prepare(A, E)
    eA, eAf = _expm_frechet_into(frechet_buffer(A), A, E)
    return eA.clone(), eAf.clone()


def expm_frechet_buffered(buff: Tensor, A, E) -> Tuple[Tensor, Tensor]:
    """:func:`expm_frechet` computed inside a caller-owned scratch buffer.

    ``buff`` must have shape ``(16k, k)`` for ``k×k`` inputs and is split into
    sixteen ``k×k`` row blocks. Once the Padé terms are formed, U, V, Lu, Lv are
    moved to blocks 4-7; blocks 0, 1 and 2 then hold ``exp(A)``, the derivative
    and a temporary. The returned tensors are views of ``buff`` and are only
    valid until the buffer is reused.

    Raises:
        DimensionMismatch: On non-square ``A``, mismatched ``E`` or a buffer of
            the wrong shape.
        TypeError: If ``A``/``E`` cannot be stored in the buffer's dtype.
    """
    A, E = _prepare(A, E)
    k = A.shape[0]
    if tuple(buff.shape) != (BUFFER_BLOCKS * k, k):
        raise DimensionMismatch(
            f"expm_frechet_buffered expects a buffer of shape {(BUFFER_BLOCKS * k, k)}, "
            f"got {tuple(buff.shape)}"
        )
    if torch.promote_types(A.dtype, buff.dtype) != buff.dtype:
        raise TypeError(f"Cannot store {A.dtype} results in a {buff.dtype} buffer")
    A = A.to(dtype=buff.dtype, device=buff.device)
    E = E.to(dtype=buff.dtype, device=buff.device)
    return _expm_frechet_into(buff, A, E)
