import numpy as np
import pytest

from kktsolve.csparse import CscMatrix, KktMatrix, compress, cumsum, form_kkt


def hs21_a():
    return CscMatrix(4, 2, [0, 2, 4], [1, 2, 1, 3], [-10.0, -1.0, 1.0, -1.0])


def hs21_p():
    return CscMatrix(2, 2, [0, 1, 2], [0, 1], [0.02, 2.0])


def dense_upper_p():
    return np.array(
        [
            [3.0, -1.0, 0.0],
            [0.0, 2.0, 0.5],
            [0.0, 0.0, 4.0],
        ]
    )


def expected_kkt(a_dense, p_dense, r):
    n = a_dense.shape[1]
    m = a_dense.shape[0]
    p_sym = p_dense + p_dense.T - np.diag(np.diag(p_dense))
    top = np.hstack([p_sym + np.diag(r[:n]), a_dense.T])
    bottom = np.hstack([a_dense, -np.diag(r[n:])])
    full = np.vstack([top, bottom])
    assert full.shape == (n + m, n + m)
    return full


def test_cumsum_starts_at_zero_and_steps_by_counts():
    counts = [2, 0, 3, 1]
    out = cumsum(counts)
    assert out[0] == 0
    assert len(out) == len(counts) + 1
    assert list(np.diff(out)) == counts


def test_cumsum_empty():
    assert list(cumsum([])) == [0]


def test_from_dense_round_trip():
    dense = np.array([[1.0, 0.0, 2.0], [0.0, 0.0, -3.0]])
    mat = CscMatrix.from_dense(dense)
    assert (mat.m, mat.n) == (2, 3)
    assert mat.nnz == 3
    assert list(mat.p) == [0, 1, 1, 3]
    np.testing.assert_array_equal(mat.to_dense(), dense)


def test_transpose_matches_dense():
    a = hs21_a()
    t = a.transpose()
    assert (t.m, t.n) == (a.n, a.m)
    np.testing.assert_array_equal(t.to_dense(), a.to_dense().T)


def test_matvec_and_rmatvec():
    a = hs21_a()
    dense = a.to_dense()
    x = np.array([0.5, -2.0])
    y = np.array([1.0, 2.0, 3.0, 4.0])
    np.testing.assert_allclose(a.matvec(x), dense @ x)
    np.testing.assert_allclose(a.rmatvec(y), dense.T @ y)


def test_matvec_rejects_wrong_length():
    with pytest.raises(ValueError):
        hs21_a().matvec([1.0, 2.0, 3.0])


def test_sym_matvec_uses_upper_triangle():
    upper = dense_upper_p()
    p = CscMatrix.from_dense(upper)
    full = upper + upper.T - np.diag(np.diag(upper))
    x = np.array([1.0, -1.0, 2.0])
    np.testing.assert_allclose(p.sym_matvec(x), full @ x)


def test_sym_matvec_ignores_lower_entries():
    with_lower = dense_upper_p()
    with_lower[2, 0] = 100.0
    p = CscMatrix.from_dense(with_lower)
    ref = CscMatrix.from_dense(dense_upper_p())
    x = np.array([1.0, 2.0, 3.0])
    np.testing.assert_allclose(p.sym_matvec(x), ref.sym_matvec(x))


@pytest.mark.parametrize(
    "args",
    [
        (2, 2, [0, 1], [0], [1.0]),
        (2, 2, [1, 1, 1], [0], [1.0]),
        (2, 2, [0, 2, 1], [0, 1], [1.0, 2.0]),
        (2, 2, [0, 1, 1], [5], [1.0]),
    ],
)
def test_invalid_matrix_rejected(args):
    with pytest.raises(ValueError):
        CscMatrix(*args)


def test_compress_mapping_points_at_each_triplet():
    rows = [2, 0, 1, 0, 2]
    cols = [1, 0, 2, 2, 0]
    vals = [1.5, -2.0, 3.0, 4.0, 5.0]
    mat, mapping = compress(3, 3, rows, cols, vals)
    assert sorted(mapping) == list(range(len(rows)))
    for k in range(len(rows)):
        assert mat.i[mapping[k]] == rows[k]
        assert mat.x[mapping[k]] == vals[k]
    dense = np.zeros((3, 3))
    dense[rows, cols] = vals
    np.testing.assert_array_equal(mat.to_dense(), dense)


def test_compress_keeps_input_order_within_column():
    mat, _ = compress(3, 1, [2, 0, 1], [0, 0, 0], [1.0, 2.0, 3.0])
    assert list(mat.i) == [2, 0, 1]


def test_compress_rejects_bad_input():
    with pytest.raises(ValueError):
        compress(2, 2, [0, 1], [0], [1.0, 2.0])
    with pytest.raises(ValueError):
        compress(2, 2, [0], [3], [1.0])
    with pytest.raises(ValueError):
        compress(2, 2, [4], [0], [1.0])


@pytest.mark.parametrize("upper", [True, False])
def test_form_kkt_hs21(upper):
    a, p = hs21_a(), hs21_p()
    r = np.array([0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
    kkt = form_kkt(a, p, r, upper)
    assert isinstance(kkt, KktMatrix)
    full = expected_kkt(a.to_dense(), p.to_dense(), r)
    tri = np.triu(full) if upper else np.tril(full)
    np.testing.assert_allclose(kkt.matrix.to_dense(), tri)
    np.testing.assert_allclose(kkt.diag_p, [0.02, 2.0])


@pytest.mark.parametrize("upper", [True, False])
def test_form_kkt_diag_indices(upper):
    a = hs21_a()
    p = CscMatrix.from_dense(np.array([[0.0, 1.0], [0.0, 0.0]]))
    r = np.arange(1.0, 7.0)
    kkt = form_kkt(a, p, r, upper)
    n = a.n
    x = kkt.matrix.x
    np.testing.assert_allclose(x[kkt.diag_r_idxs[:n]], kkt.diag_p + r[:n])
    np.testing.assert_allclose(x[kkt.diag_r_idxs[n:]], -r[n:])
    np.testing.assert_allclose(kkt.diag_p, [0.0, 0.0])
    full = expected_kkt(a.to_dense(), p.to_dense(), r)
    tri = np.triu(full) if upper else np.tril(full)
    np.testing.assert_allclose(kkt.matrix.to_dense(), tri)


def test_form_kkt_without_p():
    a = hs21_a()
    r = np.full(6, 0.5)
    kkt = form_kkt(a, None, r, True)
    full = expected_kkt(a.to_dense(), np.zeros((2, 2)), r)
    np.testing.assert_allclose(kkt.matrix.to_dense(), np.triu(full))
    np.testing.assert_allclose(kkt.diag_p, np.zeros(2))
    np.testing.assert_allclose(kkt.matrix.x[kkt.diag_r_idxs], np.diag(full))


def test_form_kkt_with_empty_p_column():
    a = CscMatrix.from_dense(np.array([[1.0, 0.0, 2.0], [0.0, -1.0, 1.0]]))
    p_dense = np.array([[10.0, 0.0, 1.0], [0.0, 0.0, 0.0], [0.0, 0.0, 10.0]])
    p = CscMatrix.from_dense(p_dense)
    r = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
    kkt = form_kkt(a, p, r, True)
    full = expected_kkt(a.to_dense(), p_dense, r)
    np.testing.assert_allclose(kkt.matrix.to_dense(), np.triu(full))
    np.testing.assert_allclose(kkt.matrix.x[kkt.diag_r_idxs], np.diag(full))


def test_form_kkt_lower_is_transpose_of_upper():
    a, p = hs21_a(), hs21_p()
    r = np.linspace(0.1, 1.0, 6)
    up = form_kkt(a, p, r, True).matrix.to_dense()
    low = form_kkt(a, p, r, False).matrix.to_dense()
    np.testing.assert_allclose(low, up.T)


def test_form_kkt_rejects_wrong_diag_length():
    with pytest.raises(ValueError):
        form_kkt(hs21_a(), hs21_p(), np.ones(5), True)


def test_form_kkt_rejects_wrong_p_shape():
    p = CscMatrix.from_dense(np.eye(3))
    with pytest.raises(ValueError):
        form_kkt(hs21_a(), p, np.ones(6), True)