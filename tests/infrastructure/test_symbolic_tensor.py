import unittest

import numpy as np

from deepgraph.domain._errors import InputNotProvidedError, OpHasNoHandlerError
from deepgraph.domain._graph import (
    Add,
    Feed,
    Graph,
    Internal,
    OpTy,
    Square,
    TrainConst,
)
from deepgraph.infrastructure._symbolic import SymbolicTensor
from deepgraph.infrastructure.native import NativeBackend, scalar_tensor, to_scalar
from deepgraph.infrastructure.native.handlers import AddHandler


def _rng() -> np.random.Generator:
    return np.random.default_rng(0)


def _count(graph: Graph, ty: OpTy) -> int:
    return sum(1 for op in graph if op.ty is ty)


class TestConstruction(unittest.TestCase):
    def test_feed_has_empty_graph(self):
        x = SymbolicTensor("x")
        self.assertEqual(len(x.graph), 0)
        self.assertEqual(x.input, Feed("x"))
        self.assertEqual(SymbolicTensor.feed("x").input, Feed("x"))

    def test_train_const_has_single_source_node(self):
        p = SymbolicTensor.train_const([2, 3], 1.5)
        self.assertEqual(p.graph.ops, [TrainConst((2, 3), 1.5)])
        self.assertEqual(p.input, Internal(0, 0))

    def test_const_uses_const_op(self):
        k = SymbolicTensor.const((), 2.0)
        self.assertIs(k.graph[0].ty, OpTy.CONST)

    def test_from_op_rejects_ops_with_inputs(self):
        with self.assertRaises(ValueError):
            SymbolicTensor.from_op(Square(Feed("x")))

    def test_internal_source_requires_a_graph(self):
        with self.assertRaises(ValueError):
            SymbolicTensor(Internal(0, 0))


class TestComposition(unittest.TestCase):
    def test_binary_appends_op_on_merged_graph(self):
        c = SymbolicTensor("a") + SymbolicTensor("b")
        self.assertEqual(c.graph.ops, [Add(Feed("a"), Feed("b"))])
        self.assertEqual(c.input, Internal(0, 0))

    def test_binary_accepts_feed_names(self):
        c = SymbolicTensor("a") - "b"
        self.assertEqual(c.graph[0].inputs, (Feed("a"), Feed("b")))

    def test_unary_does_not_merge(self):
        x = SymbolicTensor("x") + SymbolicTensor.train_const()
        sq = x.squared()
        self.assertTrue(sq.shares_graph_with(x))
        self.assertEqual(sq.graph[sq.input.node], Square(x.input))

    def test_right_operand_is_shifted_into_left_graph(self):
        left = SymbolicTensor.const((), 1.0) + SymbolicTensor.const((), 2.0)
        right = SymbolicTensor.train_const((), 3.0).squared()
        out = left * right

        ops = out.graph.ops
        self.assertEqual(len(ops), 6)
        self.assertEqual(right.input, Internal(4, 0))
        self.assertEqual(ops[4], Square(Internal(3, 0)))
        self.assertEqual(ops[5].inputs, (Internal(2, 0), Internal(4, 0)))

    def test_handles_follow_their_graph_after_merges(self):
        p = SymbolicTensor.train_const((), 1.0)
        q = SymbolicTensor.train_const((), 2.0)
        s = p + q
        z = SymbolicTensor.const((), 3.0)
        w = z * q

        self.assertTrue(w.shares_graph_with(s))
        self.assertTrue(p.shares_graph_with(z))
        self.assertEqual(q.input, Internal(2, 0))
        self.assertEqual(s.graph[s.input.node], Add(Internal(1, 0), Internal(2, 0)))

    def test_parameter_used_twice_stays_one_parameter(self):
        theta = SymbolicTensor.train_const((), 0.0)
        a = SymbolicTensor("x") + theta
        b = SymbolicTensor("y") * theta
        out = a + b
        self.assertEqual(_count(out.graph, OpTy.TRAIN_CONST), 1)

    def test_shared_subexpression_is_one_node(self):
        s = SymbolicTensor("a") + SymbolicTensor("b")
        out = s * s
        self.assertEqual(_count(out.graph, OpTy.ADD), 1)
        self.assertEqual(out.graph[out.input.node].inputs, (s.input, s.input))


class TestEvaluation(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = NativeBackend.with_builtin_handlers()

    def test_forward_add(self):
        c = SymbolicTensor("a") + SymbolicTensor("b")
        state = c.generate_state(self.backend, _rng())
        feed = {"a": scalar_tensor(2.0), "b": scalar_tensor(3.0)}
        self.assertEqual(float(c.evaluate(self.backend, state, feed)), 5.0)

    def test_forward_vectors(self):
        c = SymbolicTensor("a") * SymbolicTensor.const((3,), 2.0)
        state = c.generate_state(self.backend, _rng())
        out = c.evaluate(self.backend, state, {"a": np.array([1.0, 2.0, 3.0], np.float32)})
        np.testing.assert_allclose(out, [2.0, 4.0, 6.0])

    def test_merged_graph_evaluates_like_the_standalone_graph(self):
        inputs = {"a": scalar_tensor(1.5), "b": scalar_tensor(-4.0)}

        g2 = SymbolicTensor("a") - SymbolicTensor.const((), 2.0)
        g2 = (g2 * SymbolicTensor("b")).squared()
        alone = Graph(list(g2.graph.ops))
        alone_state = self.backend.state(alone, _rng())
        expected, _ = self.backend.forward(alone, alone_state, inputs, g2.input)

        prefix = SymbolicTensor.const((), 9.0) + SymbolicTensor("b")
        n = len(prefix.graph)
        before = g2.input
        combined = prefix + g2

        self.assertEqual(g2.input, before.shifted(n))
        state = combined.generate_state(self.backend, _rng())
        self.assertAlmostEqual(float(g2.evaluate(self.backend, state, inputs)), float(expected))

    def test_missing_input_raises_input_not_provided(self):
        z = SymbolicTensor("z").squared()
        state = z.generate_state(self.backend, _rng())
        with self.assertRaises(InputNotProvidedError) as cm:
            z.evaluate(self.backend, state, {})
        self.assertEqual(cm.exception.name, "z")

    def test_unregistered_op_fails_state_generation(self):
        backend = NativeBackend().handler(AddHandler())
        out = (SymbolicTensor("a") + SymbolicTensor("b")).squared()
        with self.assertRaises(OpHasNoHandlerError) as cm:
            out.generate_state(backend, _rng())
        self.assertIs(cm.exception.ty, OpTy.SQUARE)

    def test_unregistered_op_fails_evaluation(self):
        out = (SymbolicTensor("a") + SymbolicTensor("b")).squared()
        state = out.generate_state(self.backend, _rng())
        partial = NativeBackend().handler(AddHandler())
        with self.assertRaises(OpHasNoHandlerError) as cm:
            out.evaluate(partial, state, {"a": scalar_tensor(1.0), "b": scalar_tensor(1.0)})
        self.assertIs(cm.exception.ty, OpTy.SQUARE)

    def test_stale_state_is_rejected(self):
        x = SymbolicTensor("x") + SymbolicTensor.train_const()
        state = x.generate_state(self.backend, _rng())
        longer = x.squared()
        with self.assertRaises(ValueError):
            longer.evaluate(self.backend, state, {"x": scalar_tensor(1.0)})


class TestGradientDescent(unittest.TestCase):
    def test_train_add(self):
        backend = NativeBackend.with_builtin_handlers()
        rng = np.random.default_rng(0)

        y = SymbolicTensor("x") + SymbolicTensor.train_const((), 0.0)
        loss = (y - SymbolicTensor("y")).squared()
        state = loss.generate_state(backend, rng)

        m = 5.0
        learning_rate = 0.01
        first = None
        loss_value = float("nan")
        for _ in range(1000):
            x = float(rng.random())
            feed = {"x": scalar_tensor(x), "y": scalar_tensor(x + m)}
            loss_value = loss.gradient_descent(
                backend, state, feed, learning_rate, to_scalar, scalar_tensor
            )
            if first is None:
                first = loss_value

        self.assertAlmostEqual(first, 25.0, places=3)
        self.assertLess(loss_value, 0.1)

        (theta_node,) = [
            i for i, op in enumerate(loss.graph) if op.ty is OpTy.TRAIN_CONST
        ]
        self.assertAlmostEqual(float(state[theta_node][0]), m, delta=0.5)

    def test_single_step_returns_pre_update_loss_and_updates_state(self):
        backend = NativeBackend.with_builtin_handlers()
        theta = SymbolicTensor.train_const((), 1.0)
        loss = (theta - SymbolicTensor("y")).squared()
        state = loss.generate_state(backend, _rng())

        value = loss.gradient_descent(
            backend, state, {"y": scalar_tensor(3.0)}, 0.1, to_scalar, scalar_tensor
        )

        # loss = 4, output delta = -0.4, dtheta = 2 * (1 - 3) * -0.4 = 1.6
        self.assertAlmostEqual(value, 4.0, places=5)
        self.assertAlmostEqual(float(state[theta.input.node][0]), 2.6, places=5)

    def test_constants_are_not_trained(self):
        backend = NativeBackend.with_builtin_handlers()
        k = SymbolicTensor.const((), 1.0)
        theta = SymbolicTensor.train_const((), 0.0)
        loss = (k + theta - SymbolicTensor("y")).squared()
        state = loss.generate_state(backend, _rng())

        loss.gradient_descent(
            backend, state, {"y": scalar_tensor(2.0)}, 0.05, to_scalar, scalar_tensor
        )

        self.assertEqual(float(state[k.input.node][0]), 1.0)
        self.assertNotEqual(float(state[theta.input.node][0]), 0.0)

    def test_evaluated_value_is_unaffected_by_training(self):
        backend = NativeBackend.with_builtin_handlers()
        theta = SymbolicTensor.train_const((), 1.0)
        loss = (theta - SymbolicTensor("y")).squared()
        state = loss.generate_state(backend, _rng())

        before = theta.evaluate(backend, state, {})
        loss.gradient_descent(
            backend, state, {"y": scalar_tensor(3.0)}, 0.1, to_scalar, scalar_tensor
        )

        self.assertEqual(float(before), 1.0)
        self.assertAlmostEqual(float(theta.evaluate(backend, state, {})), 2.6, places=5)

    def test_train_scale_of_broadcast_constant(self):
        # y = k * theta + x with k = [2, 2, 2] and theta* = 1.5
        backend = NativeBackend.with_builtin_handlers()
        rng = np.random.default_rng(0)

        k = SymbolicTensor.const((3,), 2.0)
        theta = SymbolicTensor.train_const((), 0.0)
        loss = ((k * theta + "x") - SymbolicTensor("y")).squared()
        state = loss.generate_state(backend, rng)

        loss_value = float("nan")
        for _ in range(500):
            x = rng.random(3).astype(np.float32)
            feed = {"x": x, "y": x + np.float32(3.0)}
            loss_value = loss.gradient_descent(
                backend, state, feed, 0.001, to_scalar, scalar_tensor
            )

        self.assertLess(loss_value, 0.1)
        self.assertAlmostEqual(float(state[theta.input.node][0]), 1.5, delta=0.2)
        np.testing.assert_array_equal(state[k.input.node][0], [2.0, 2.0, 2.0])


if __name__ == "__main__":
    unittest.main()
