"""Batch lifecycle state machine for ``put-car``.

One instance per run. Used to validate that the pipeline steps happen in
order; it performs no work itself and has no state callbacks.
"""

from __future__ import annotations

from statemachine import State, StateMachine


class PipelineSM(StateMachine):
    """Seven-state lifecycle of one ``put-car`` run.

    States:
        idle        -- Preconditions checked, nothing started.
        splitting   -- carbites is writing chunk files.
        discovering -- Scanning the archive directory for chunks.
        uploading   -- Chunks are being pushed to web3.storage.
        resolving   -- ipfs-car is listing the root CID.
        done        -- CID resolved.
        failed      -- A fatal error stopped the run.
    """

    idle = State("idle", initial=True, value="idle")
    splitting = State("splitting", value="splitting")
    discovering = State("discovering", value="discovering")
    uploading = State("uploading", value="uploading")
    resolving = State("resolving", value="resolving")
    done = State("done", final=True, value="done")
    failed = State("failed", final=True, value="failed")

    split = idle.to(splitting)
    discover = idle.to(discovering) | splitting.to(discovering)
    upload = discovering.to(uploading)
    resolve = uploading.to(resolving)
    finish = resolving.to(done)
    fail = (
        idle.to(failed)
        | splitting.to(failed)
        | discovering.to(failed)
        | uploading.to(failed)
        | resolving.to(failed)
    )
