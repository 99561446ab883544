"""LSTM and BiLSTM kernels.

Weights are stacked gate blocks in the order input (i), forget (f), cell
candidate (z), output (o):

    input weights      W: (4H, C)
    recurrent weights  R: (4H, H)
    bias               b: (4H,)

For a BiLSTM every parameter and state holds the forward direction in its
first half and the backward direction in its second half. The backward
direction runs on the time-reversed sequence.
"""
from __future__ import annotations

from dataclasses import dataclass

import torch
import torch.nn.functional as F
from torch import Tensor

from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory

NUM_GATES = 4


def gate_indices(hidden_size: int) -> dict[str, slice]:
    """Row ranges of each gate block in the stacked weights."""
    H = hidden_size
    return {
        "input": slice(0, H),
        "forget": slice(H, 2 * H),
        "cell": slice(2 * H, 3 * H),
        "output": slice(3 * H, 4 * H),
    }


@dataclass
class LSTMMemory:
    cell_state: Tensor  # (N, T, H)
    hidden_state: Tensor  # (N, T, H)
    gates: Tensor  # (N, T, 4H), after activation

    @property
    def final_hidden_state(self) -> Tensor:
        return self.hidden_state[:, -1]

    @property
    def final_cell_state(self) -> Tensor:
        return self.cell_state[:, -1]


@dataclass
class BiLSTMMemory:
    forward: LSTMMemory
    backward: LSTMMemory

    @property
    def final_hidden_state(self) -> Tensor:
        return torch.cat([self.forward.final_hidden_state, self.backward.final_hidden_state], dim=-1)

    @property
    def final_cell_state(self) -> Tensor:
        return torch.cat([self.forward.final_cell_state, self.backward.final_cell_state], dim=-1)


def _sigmoid(v: Tensor) -> Tensor:
    return 1 / (1 + torch.exp(-v))


def _initial(state: Tensor, batch: int) -> Tensor:
    if state.dim() == 1:
        return state.unsqueeze(0).expand(batch, -1)
    return state


def _sequence_gradient(dZ: Tensor, steps: int, return_last: bool) -> Tensor:
    if not return_last:
        return dZ
    dY = dZ.new_zeros((dZ.shape[0], steps, dZ.shape[-1]))
    dY[:, -1] = dZ
    return dY


class _LSTM(ExecutionStrategy):
    def _project(self, X: Tensor, W: Tensor, b: Tensor) -> Tensor | None:
        """Input projection of all time steps at once, or None to do it per step."""
        return None

    def _activate(self, a: Tensor, H: int) -> Tensor:
        raise NotImplementedError

    def _input_terms(self, X: Tensor, dG: Tensor, W: Tensor, need_weight_gradients: bool):
        raise NotImplementedError

    def forward(
        self,
        X: Tensor,
        W: Tensor,
        R: Tensor,
        b: Tensor,
        hidden_state: Tensor,
        cell_state: Tensor,
        return_last: bool = False,
    ) -> tuple[Tensor, Memory]:
        N, T, _ = X.shape
        H = R.shape[1]
        projected = self._project(X, W, b)
        h = _initial(hidden_state, N)
        c = _initial(cell_state, N)
        hs, cs, gs = [], [], []
        for t in range(T):
            if projected is None:
                a = X[:, t] @ W.t() + b
            else:
                a = projected[:, t]
            g = self._activate(a + h @ R.t(), H)
            i, f, z, o = g.split(H, dim=-1)
            c = z * i + f * c
            h = torch.tanh(c) * o
            hs.append(h)
            cs.append(c)
            gs.append(g)
        memory = LSTMMemory(
            cell_state=torch.stack(cs, dim=1),
            hidden_state=torch.stack(hs, dim=1),
            gates=torch.stack(gs, dim=1),
        )
        Y = memory.hidden_state
        return (Y[:, -1] if return_last else Y), memory

    def _gate_gradients(
        self, dY: Tensor, memory: LSTMMemory, R: Tensor, cell_state: Tensor
    ) -> Tensor:
        """Gradients of the gate pre-activations at every step, (N, T, 4H)."""
        N, T, H = memory.hidden_state.shape
        c0 = _initial(cell_state, N)
        dG = dY.new_zeros((N, T, NUM_GATES * H))
        dh_next = dY.new_zeros((N, H))
        dc_next = dY.new_zeros((N, H))
        for t in reversed(range(T)):
            i, f, z, o = memory.gates[:, t].split(H, dim=-1)
            c = memory.cell_state[:, t]
            c_prev = memory.cell_state[:, t - 1] if t > 0 else c0
            tanh_c = torch.tanh(c)
            dh = dY[:, t] + dh_next
            dc = dh * o * (1 - tanh_c * tanh_c) + dc_next
            dG[:, t] = torch.cat(
                [
                    dc * z * i * (1 - i),
                    dc * c_prev * f * (1 - f),
                    dc * i * (1 - z * z),
                    dh * tanh_c * o * (1 - o),
                ],
                dim=-1,
            )
            dh_next = dG[:, t] @ R
            dc_next = dc * f
        return dG

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        W: Tensor,
        R: Tensor,
        hidden_state: Tensor,
        cell_state: Tensor,
        return_last: bool = False,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        mem: LSTMMemory = memory
        N, T, _ = X.shape
        dY = _sequence_gradient(dZ, T, return_last)
        dG = self._gate_gradients(dY, mem, R, cell_state)
        dX, dW = self._input_terms(X, dG, W, need_weight_gradients)
        if not need_weight_gradients:
            return dX, []
        h0 = _initial(hidden_state, N).unsqueeze(1)
        h_prev = torch.cat([h0, mem.hidden_state[:, :-1]], dim=1)
        dR = torch.einsum("ntg,nth->gh", dG, h_prev)
        db = dG.sum(dim=(0, 1))
        return dX, [dW, dR, db]


class LSTMHostStrategy(_LSTM):
    backend = Backend.HOST

    def _activate(self, a: Tensor, H: int) -> Tensor:
        gates = gate_indices(H)
        return torch.cat(
            [
                _sigmoid(a[:, gates["input"]]),
                _sigmoid(a[:, gates["forget"]]),
                torch.tanh(a[:, gates["cell"]]),
                _sigmoid(a[:, gates["output"]]),
            ],
            dim=-1,
        )

    def _input_terms(self, X: Tensor, dG: Tensor, W: Tensor, need_weight_gradients: bool):
        dX = torch.zeros_like(X)
        dW = torch.zeros_like(W) if need_weight_gradients else None
        for t in range(X.shape[1]):
            dX[:, t] = dG[:, t] @ W
            if dW is not None:
                dW += dG[:, t].t() @ X[:, t]
        return dX, dW


class LSTMAcceleratorStrategy(_LSTM):
    backend = Backend.ACCELERATOR

    def _project(self, X: Tensor, W: Tensor, b: Tensor) -> Tensor:
        return F.linear(X, W, b)

    def _activate(self, a: Tensor, H: int) -> Tensor:
        i, f, z, o = a.split(H, dim=-1)
        return torch.cat([torch.sigmoid(i), torch.sigmoid(f), torch.tanh(z), torch.sigmoid(o)], dim=-1)

    def _input_terms(self, X: Tensor, dG: Tensor, W: Tensor, need_weight_gradients: bool):
        dX = torch.matmul(dG, W)
        dW = torch.einsum("ntg,ntc->gc", dG, X) if need_weight_gradients else None
        return dX, dW


class _BiLSTM(ExecutionStrategy):
    direction: _LSTM

    @staticmethod
    def _halves(R: Tensor) -> tuple[slice, slice, slice, slice]:
        H = R.shape[1]
        G = NUM_GATES * H
        return slice(0, G), slice(G, 2 * G), slice(0, H), slice(H, 2 * H)

    def forward(
        self,
        X: Tensor,
        W: Tensor,
        R: Tensor,
        b: Tensor,
        hidden_state: Tensor,
        cell_state: Tensor,
        return_last: bool = False,
    ) -> tuple[Tensor, Memory]:
        fw, bw, fs, bs = self._halves(R)
        Yf, mf = self.direction.forward(X, W[fw], R[fw], b[fw], hidden_state[..., fs], cell_state[..., fs])
        Yb, mb = self.direction.forward(
            X.flip(1), W[bw], R[bw], b[bw], hidden_state[..., bs], cell_state[..., bs]
        )
        Y = torch.cat([Yf, Yb.flip(1)], dim=-1)
        return (Y[:, -1] if return_last else Y), BiLSTMMemory(forward=mf, backward=mb)

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        W: Tensor,
        R: Tensor,
        hidden_state: Tensor,
        cell_state: Tensor,
        return_last: bool = False,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        mem: BiLSTMMemory = memory
        fw, bw, fs, bs = self._halves(R)
        H = R.shape[1]
        dY = _sequence_gradient(dZ, X.shape[1], return_last)
        dXf, gf = self.direction.backward(
            X, None, dY[..., :H], mem.forward, W[fw], R[fw],
            hidden_state[..., fs], cell_state[..., fs],
            need_weight_gradients=need_weight_gradients,
        )
        dXb, gb = self.direction.backward(
            X.flip(1), None, dY[..., H:].flip(1), mem.backward, W[bw], R[bw],
            hidden_state[..., bs], cell_state[..., bs],
            need_weight_gradients=need_weight_gradients,
        )
        grads = [torch.cat([f, r], dim=0) for f, r in zip(gf, gb)]
        return dXf + dXb.flip(1), grads


class BiLSTMHostStrategy(_BiLSTM):
    backend = Backend.HOST
    direction = LSTMHostStrategy()


class BiLSTMAcceleratorStrategy(_BiLSTM):
    backend = Backend.ACCELERATOR
    direction = LSTMAcceleratorStrategy()
