"""
deeplearn.model — Network Engine
=================================
The feed-forward network the learner trains. One class plays both
roles in the pretraining schedule:

    - the target network:  n_inputs → [n_hiddens] × hidden_layers → n_outputs
    - a layer's autocoder: width → n_hiddens → width

Components:
    - network.py — BackpropNetwork (forward pass, SGD step, autocoder
                   creation/promotion, binary save/load, equality)
"""

from deeplearn.model.network import BackpropNetwork
