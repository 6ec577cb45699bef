"""Tests for the Fréchet derivative of the matrix exponential."""

import pytest
import torch
from riemtorch import DimensionMismatch
from riemtorch.expm_frechet import (
    BUFFER_BLOCKS,
    _select_order,
    expm_frechet,
    expm_frechet_buffered,
    frechet_buffer,
)


def block_reference(A, E):
    """exp([[A, E], [0, A]]) carries D exp(A)[E] in its upper right block."""
    n = A.shape[0]
    Z = torch.zeros_like(A)
    big = torch.cat([torch.cat([A, E], dim=1), torch.cat([Z, A], dim=1)], dim=0)
    X = torch.linalg.matrix_exp(big)
    return X[:n, :n], X[:n, n:]


@pytest.fixture
def direction():
    torch.manual_seed(0)
    return torch.randn(4, 4)


class TestPadeSelection:
    """Choice of Padé order and squarings by the 1-norm."""

    @pytest.mark.parametrize("norm,order", [(0.01, 3), (0.2, 5), (0.7, 7), (1.0, 9), (2.0, 13)])
    def test_order_by_norm(self, norm, order):
        A = torch.diag(torch.tensor([norm, 0.0]))
        m, s = _select_order(A)
        assert m == order
        assert s == 0

    def test_squarings_for_large_norm(self):
        A = torch.diag(torch.tensor([20.0, 0.0]))
        m, s = _select_order(A)
        assert m == 13
        assert s == 3  # 20 / 2^3 = 2.5 <= 4.74


class TestExpmFrechet:
    """Dense Fréchet derivative."""

    def test_nilpotent(self):
        A = torch.tensor([[0.0, 1.0], [0.0, 0.0]])
        E = torch.tensor([[0.0, 0.0], [1.0, 0.0]])
        eA, dA = expm_frechet(A, E)
        assert torch.allclose(eA, torch.tensor([[1.0, 1.0], [0.0, 1.0]]), atol=1e-13)
        assert torch.allclose(dA, torch.tensor([[0.5, 1.0 / 6.0], [1.0, 0.5]]), atol=1e-13)

    def test_zero_matrix(self, direction):
        A = torch.zeros(4, 4)
        eA, dA = expm_frechet(A, direction)
        assert torch.allclose(eA, torch.eye(4), atol=1e-15)
        assert torch.allclose(dA, direction, atol=1e-15)

    @pytest.mark.parametrize("scale", [0.001, 0.05, 0.3, 1.5, 3.0, 12.0])
    def test_matches_block_exponential(self, direction, scale):
        """Every Padé order and the squaring phase agree with the block formula"""
        torch.manual_seed(1)
        A = torch.randn(4, 4)
        A = scale * A / torch.linalg.matrix_norm(A, ord=1)
        eA, dA = expm_frechet(A, direction)
        ref_eA, ref_dA = block_reference(A, direction)
        assert torch.allclose(eA, ref_eA, atol=1e-12 * max(1.0, float(ref_eA.abs().max())))
        assert torch.allclose(dA, ref_dA, atol=1e-11 * max(1.0, float(ref_dA.abs().max())))

    def test_matches_finite_difference(self, direction):
        torch.manual_seed(2)
        A = torch.randn(4, 4)
        h = 1e-6
        fd = (torch.linalg.matrix_exp(A + h * direction) - torch.linalg.matrix_exp(A - h * direction)) / (2 * h)
        _, dA = expm_frechet(A, direction)
        assert torch.allclose(dA, fd, atol=1e-6 * float(fd.abs().max()))

    def test_complex_input(self):
        torch.manual_seed(3)
        A = torch.randn(3, 3, dtype=torch.complex128)
        E = torch.randn(3, 3, dtype=torch.complex128)
        eA, dA = expm_frechet(A, E)
        ref_eA, ref_dA = block_reference(A, E)
        assert eA.is_complex()
        assert torch.allclose(eA, ref_eA, atol=1e-11)
        assert torch.allclose(dA, ref_dA, atol=1e-10)

    def test_integer_input_is_promoted(self):
        eA, dA = expm_frechet(torch.zeros(2, 2, dtype=torch.int64), torch.eye(2, dtype=torch.int64))
        assert eA.dtype == torch.get_default_dtype()
        assert torch.allclose(dA, torch.eye(2))

    def test_non_square_raises(self):
        with pytest.raises(DimensionMismatch):
            expm_frechet(torch.ones(2, 3), torch.ones(2, 3))

    def test_mismatched_direction_raises(self):
        with pytest.raises(DimensionMismatch):
            expm_frechet(torch.eye(2), torch.eye(3))


class TestExpmFrechetBuffered:
    """Fréchet derivative computed in a caller-owned buffer."""

    @pytest.mark.parametrize("scale", [0.005, 0.1, 0.5, 1.5, 10.0])
    def test_matches_dense(self, direction, scale):
        torch.manual_seed(4)
        A = torch.randn(4, 4)
        A = scale * A / torch.linalg.matrix_norm(A, ord=1)
        buff = frechet_buffer(A)
        eA, dA = expm_frechet_buffered(buff, A, direction)
        ref_eA, ref_dA = expm_frechet(A, direction)
        assert torch.equal(eA, ref_eA)
        assert torch.equal(dA, ref_dA)

    def test_results_are_views_of_buffer(self, direction):
        A = 0.1 * torch.eye(4)
        buff = frechet_buffer(A)
        eA, dA = expm_frechet_buffered(buff, A, direction)
        assert eA.data_ptr() == buff.data_ptr()
        assert torch.equal(buff[4:8], dA)

    def test_buffer_is_reusable(self, direction):
        A = 0.2 * torch.eye(4)
        buff = frechet_buffer(A)
        expm_frechet_buffered(buff, 3.0 * torch.ones(4, 4), direction)
        eA, dA = expm_frechet_buffered(buff, A, direction)
        ref_eA, ref_dA = expm_frechet(A, direction)
        assert torch.equal(eA, ref_eA)
        assert torch.equal(dA, ref_dA)

    def test_dense_results_own_their_storage(self, direction):
        A = 0.3 * torch.eye(4)
        eA, dA = expm_frechet(A, direction)
        assert eA.shape == (4, 4)
        assert dA.shape == (4, 4)
        assert eA.data_ptr() != dA.data_ptr()
        assert eA._base is None
        assert dA._base is None
        assert torch.allclose(eA, torch.matrix_exp(A), atol=1e-14)

    def test_buffer_shape(self):
        A = torch.eye(3)
        assert frechet_buffer(A).shape == (BUFFER_BLOCKS * 3, 3)

    def test_wrong_buffer_shape_raises(self, direction):
        with pytest.raises(DimensionMismatch):
            expm_frechet_buffered(torch.empty(10, 4), torch.eye(4), direction)

    def test_narrower_buffer_dtype_raises(self, direction):
        buff = torch.empty(BUFFER_BLOCKS * 4, 4, dtype=torch.float32)
        with pytest.raises(TypeError):
            expm_frechet_buffered(buff, torch.eye(4), direction)
