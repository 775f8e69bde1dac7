import numpy as np
from numba import njit


@njit
def rand_choice_nb(weights, u):
    '''
    Draws an index with probability proportional to weights, given a uniform
    draw u in [0, 1). Returns -1 when the weights do not sum to a positive
    finite value.
    '''
    cumulative = np.cumsum(weights)
    total = cumulative[-1]
    if not (total > 0.0 and total < np.inf):
        return -1
    k = np.searchsorted(cumulative, u * total, side="right")
    if k >= weights.shape[0]:
        k = weights.shape[0] - 1
    return k


@njit
def remove_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw):
    n_kv[z, w] -= weight
    n_k[z] -= weight
    n_k_nw[z] -= 1.0
    n_dk[d, z] -= 1.0


@njit
def add_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw):
    n_kv[z, w] += weight
    n_k[z] += weight
    n_k_nw[z] += 1.0
    n_dk[d, z] += 1.0


@njit
def sample_z_nb(d, w, z, alpha, beta, weight, n_kv, n_dk, n_k, n_k_nw, probs, u):
    # do not include token w (when sampling for token w)
    remove_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)

    vbeta = n_kv.shape[1] * beta
    for k in range(probs.shape[0]):
        probs[k] = (beta + n_kv[k, w]) * (n_dk[d, k] + alpha[k]) / (vbeta + n_k[k])

    new_z = rand_choice_nb(probs, u)
    if new_z < 0:
        add_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)
        return -1

    # re-increment with new topic assignment
    add_token_nb(d, new_z, weight, w, n_kv, n_dk, n_k, n_k_nw)
    return new_z


@njit
def sample_z_time_nb(d, w, z, alpha, beta, weight, n_kv, n_dk, n_k, n_k_nw, time_weight, probs, u):
    remove_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)

    vbeta = n_kv.shape[1] * beta
    for k in range(probs.shape[0]):
        probs[k] = (beta + n_kv[k, w]) * (n_dk[d, k] + alpha[k]) * time_weight[k] / (vbeta + n_k[k])

    new_z = rand_choice_nb(probs, u)
    if new_z < 0:
        add_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)
        return -1

    add_token_nb(d, new_z, weight, w, n_kv, n_dk, n_k, n_k_nw)
    return new_z


@njit
def sample_z_time_log_nb(d, w, z, alpha, beta, weight, n_kv, n_dk, n_k, n_k_nw, log_time_weight, probs, u):
    remove_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)

    vbeta = n_kv.shape[1] * beta
    for k in range(probs.shape[0]):
        probs[k] = (np.log(beta + n_kv[k, w]) + np.log(n_dk[d, k] + alpha[k])
                    + log_time_weight[k] - np.log(vbeta + n_k[k]))

    # log-sum-exp shift
    top = np.max(probs)
    for k in range(probs.shape[0]):
        probs[k] = np.exp(probs[k] - top)

    new_z = rand_choice_nb(probs, u)
    if new_z < 0:
        add_token_nb(d, z, weight, w, n_kv, n_dk, n_k, n_k_nw)
        return -1

    add_token_nb(d, new_z, weight, w, n_kv, n_dk, n_k, n_k_nw)
    return new_z


@njit
def sweep_base_nb(order, doc_ids, word_ids, topic_ids, alpha, beta, vocab_weights,
                  n_kv, n_dk, n_k, n_k_nw, uniforms):
    '''
    One pass of the collapsed Gibbs sampler over the tokens listed in order.
    alpha is the (num_doc, num_topics) prior matrix. Returns -1 on success or
    the position of the token whose weights degenerated.
    '''
    probs = np.empty(n_kv.shape[0])
    for i in range(order.shape[0]):
        pos = order[i]
        d = doc_ids[pos]
        w = word_ids[pos]
        new_z = sample_z_nb(d, w, topic_ids[pos], alpha[d], beta, vocab_weights[w],
                            n_kv, n_dk, n_k, n_k_nw, probs, uniforms[i])
        if new_z < 0:
            return pos
        topic_ids[pos] = new_z
    return -1


@njit
def sweep_time_nb(order, doc_ids, word_ids, topic_ids, alpha, beta, vocab_weights,
                  n_kv, n_dk, n_k, n_k_nw, time_weight, uniforms):
    '''
    Time-weighted sweep. time_weight is the (num_doc, num_topics) table of
    Beta densities of each document's timestamp under each topic.
    '''
    probs = np.empty(n_kv.shape[0])
    for i in range(order.shape[0]):
        pos = order[i]
        d = doc_ids[pos]
        w = word_ids[pos]
        new_z = sample_z_time_nb(d, w, topic_ids[pos], alpha[d], beta, vocab_weights[w],
                                 n_kv, n_dk, n_k, n_k_nw, time_weight[d], probs, uniforms[i])
        if new_z < 0:
            return pos
        topic_ids[pos] = new_z
    return -1


@njit
def sweep_time_log_nb(order, doc_ids, word_ids, topic_ids, alpha, beta, vocab_weights,
                      n_kv, n_dk, n_k, n_k_nw, log_time_weight, uniforms):
    '''
    Same as sweep_time_nb with log densities, for documents whose direct
    densities under- or overflow.
    '''
    probs = np.empty(n_kv.shape[0])
    for i in range(order.shape[0]):
        pos = order[i]
        d = doc_ids[pos]
        w = word_ids[pos]
        new_z = sample_z_time_log_nb(d, w, topic_ids[pos], alpha[d], beta, vocab_weights[w],
                                     n_kv, n_dk, n_k, n_k_nw, log_time_weight[d], probs, uniforms[i])
        if new_z < 0:
            return pos
        topic_ids[pos] = new_z
    return -1


@njit
def update_keyword_word_nb(z, s, w, weight, sign, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw):
    if s == 0:
        n0_kv[z, w] += sign * weight
        n0_k[z] += sign * weight
        n0_k_nw[z] += sign
    else:
        n1_kv[z, w] += sign * weight
        n1_k[z] += sign * weight
        n1_k_nw[z] += sign


@njit
def sample_z_keyword_nb(d, w, z, s, alpha, beta, beta_s, gamma_1, gamma_2, is_keyword, keywords_num,
                        weight, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw, n_dk, probs, u):
    num_keyword_topics = is_keyword.shape[0]

    update_keyword_word_nb(z, s, w, weight, -1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)
    n_dk[d, z] -= 1.0

    vbeta = n0_kv.shape[1] * beta
    for k in range(probs.shape[0]):
        if s == 0:
            probs[k] = (beta + n0_kv[k, w]) / (vbeta + n0_k[k]) * (n_dk[d, k] + alpha[k])
            if k < num_keyword_topics:
                probs[k] *= (n0_k[k] + gamma_2) / (n1_k[k] + gamma_1 + n0_k[k] + gamma_2)
        elif k < num_keyword_topics and is_keyword[k, w]:
            probs[k] = ((beta_s + n1_kv[k, w]) / (keywords_num[k] * beta_s + n1_k[k])
                        * (n1_k[k] + gamma_1) / (n1_k[k] + gamma_1 + n0_k[k] + gamma_2)
                        * (n_dk[d, k] + alpha[k]))
        else:
            probs[k] = 0.0

    new_z = rand_choice_nb(probs, u)
    if new_z < 0:
        update_keyword_word_nb(z, s, w, weight, 1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)
        n_dk[d, z] += 1.0
        return -1

    update_keyword_word_nb(new_z, s, w, weight, 1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)
    n_dk[d, new_z] += 1.0
    return new_z


@njit
def sample_s_keyword_nb(w, z, s, beta, beta_s, gamma_1, gamma_2, is_keyword, keywords_num,
                        weight, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw, u):
    # only keyword topics carry a switch, and only for their own keywords
    if z >= is_keyword.shape[0] or not is_keyword[z, w]:
        return s

    update_keyword_word_nb(z, s, w, weight, -1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)

    p0 = (beta + n0_kv[z, w]) / (n0_kv.shape[1] * beta + n0_k[z]) * (n0_k[z] + gamma_2)
    p1 = (beta_s + n1_kv[z, w]) / (keywords_num[z] * beta_s + n1_k[z]) * (n1_k[z] + gamma_1)
    total = p0 + p1
    if not (total > 0.0 and total < np.inf):
        update_keyword_word_nb(z, s, w, weight, 1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)
        return -1

    new_s = 0 if u * total < p0 else 1
    update_keyword_word_nb(z, new_s, w, weight, 1.0, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw)
    return new_s


@njit
def sweep_keyword_nb(order, doc_ids, word_ids, topic_ids, switch_ids, alpha, beta, beta_s, gamma_1, gamma_2,
                     is_keyword, keywords_num, vocab_weights, n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw,
                     n_dk, uniforms):
    '''
    Keyword sweep: the topic of each token is drawn given its switch, then the
    switch given the new topic. uniforms has two columns, one per draw.
    '''
    probs = np.empty(n0_kv.shape[0])
    for i in range(order.shape[0]):
        pos = order[i]
        d = doc_ids[pos]
        w = word_ids[pos]
        s = switch_ids[pos]
        new_z = sample_z_keyword_nb(d, w, topic_ids[pos], s, alpha[d], beta, beta_s, gamma_1, gamma_2,
                                    is_keyword, keywords_num, vocab_weights[w], n0_kv, n1_kv, n0_k, n1_k,
                                    n0_k_nw, n1_k_nw, n_dk, probs, uniforms[i, 0])
        if new_z < 0:
            return pos
        topic_ids[pos] = new_z

        new_s = sample_s_keyword_nb(w, new_z, s, beta, beta_s, gamma_1, gamma_2, is_keyword, keywords_num,
                                    vocab_weights[w], n0_kv, n1_kv, n0_k, n1_k, n0_k_nw, n1_k_nw,
                                    uniforms[i, 1])
        if new_s < 0:
            return pos
        switch_ids[pos] = new_s
    return -1
