import numpy as np
import scipy.sparse as sps


def matrix_is_sparse(A):
    return sps.issparse(A)


def matrix_is_complex(A):
    """Checks if the matrix is complex"""
    return np.iscomplexobj(A)


def matrix_is_square(A):
    return A.ndim == 2 and A.shape[0] == A.shape[1]


def matrix_is_symmetric(A, rtol=1e-5, atol=1e-8):
    """Checks whether a matrix is numerically symmetric"""
    if not matrix_is_square(A):
        return False
    if matrix_is_sparse(A):
        diff = (A - A.T).tocoo()
        if diff.nnz == 0:
            return True
        scale = abs(A).max()
        return np.allclose(diff.data, 0, atol=atol + rtol * scale)
    else:
        return np.allclose(A, A.T, rtol=rtol, atol=atol)


def matrix_is_finite(A):
    """Checks if all (stored) entries of the matrix are finite"""
    if matrix_is_sparse(A):
        return bool(np.all(np.isfinite(A.data)))
    return bool(np.all(np.isfinite(A)))
